"""
Tencent E-Sign integration

Request signing, a rate-limited retrying client and a typed provider façade
over the Tencent Cloud E-Sign (ESS) API.
"""

from .client import EsignClient
from .errors import (
    ConfigurationError,
    DataShapeError,
    EsignError,
    NetworkError,
    PreconditionFailed,
    ProviderError,
    get_friendly_error_message,
)
from .provider import TencentEsignProvider
from .rate_limiter import RateLimiter, RedisSlidingWindowRateLimiter, SlidingWindowRateLimiter
from .signer import SignedRequest, sign_request, verify_callback_signature
from .types import (
    ApproveStatus,
    Approver,
    ApproverType,
    FlowInfo,
    FlowStatus,
    FormField,
    SignUrlResult,
    TemplateComponent,
    TemplateInfo,
)

__all__ = [
    "ApproveStatus",
    "Approver",
    "ApproverType",
    "ConfigurationError",
    "DataShapeError",
    "EsignClient",
    "EsignError",
    "FlowInfo",
    "FlowStatus",
    "FormField",
    "NetworkError",
    "PreconditionFailed",
    "ProviderError",
    "RateLimiter",
    "RedisSlidingWindowRateLimiter",
    "SignUrlResult",
    "SignedRequest",
    "SlidingWindowRateLimiter",
    "TemplateComponent",
    "TemplateInfo",
    "TencentEsignProvider",
    "get_friendly_error_message",
    "sign_request",
    "verify_callback_signature",
]
