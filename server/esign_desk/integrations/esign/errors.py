"""
E-sign error taxonomy.

Every failure raised by the Tencent E-Sign integration is an ``EsignError``
carrying the provider error code, a human-readable message and the provider
request id (empty when the failure happened before a request id was assigned).
The subclasses form a closed set so callers can branch on type instead of
matching strings.
"""

from typing import Optional

RETRYABLE_ERROR_CODES: tuple[str, ...] = ("InternalError", "InternalError.Api")

ERROR_MESSAGES: dict[str, str] = {
    "FailedOperation": "Operation failed, please try again later",
    "InvalidParameter": "Invalid parameter, please check the input",
    "InvalidParameter.CardNumber": "ID card number does not match the name, please provide the real ID number and name",
    "ResourceNotFound.Flow": "Signing flow does not exist",
    "ResourceNotFound.Template": "Template does not exist, please check the template id",
    "OperationDenied.NoPermissionFeature": "Feature permission denied, please contact the administrator",
    "InternalError": "Internal system error, please try again later",
    "InternalError.Api": "Third-party interface failure, please try again later",
    "MissingParameter": "Missing required parameter",
    "OperationDenied.ErrNoResourceAccess": "This organization has no access to the resource",
    "OperationDenied.Forbid": "This operation is forbidden",
    "OperationDenied.NoIdentityVerify": "Personal real-name verification has not been completed",
    "OperationDenied.NoLogin": "User is not logged in",
    "ResourceNotFound": "Resource does not exist",
    "UnauthorizedOperation.NoPermissionFeature": "Please upgrade to the corresponding edition to use this feature",
}


def get_friendly_error_message(code: str) -> str:
    return ERROR_MESSAGES.get(code, f"unknown error: {code}")


def is_retryable_code(code: str) -> bool:
    return any(code == retryable or code.startswith(retryable) for retryable in RETRYABLE_ERROR_CODES)


class EsignError(Exception):
    """Base class for all e-sign integration failures."""

    def __init__(self, code: str, message: str, request_id: str = ""):
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id

    @property
    def retryable(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}, request_id={self.request_id!r})"


class NetworkError(EsignError):
    """Transport failure or non-2xx HTTP status; no provider error code was returned."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        code = f"HTTP_{status_code}" if status_code is not None else "NETWORK_ERROR"
        super().__init__(code, message, "")
        self.status_code = status_code


class ProviderError(EsignError):
    """Error reported by the provider in ``Response.Error``."""

    @property
    def retryable(self) -> bool:
        return is_retryable_code(self.code)

    def with_friendly_message(self) -> "ProviderError":
        return ProviderError(self.code, get_friendly_error_message(self.code), self.request_id)


class PreconditionFailed(EsignError):
    """A local precondition was violated before any remote call was made."""

    def __init__(self, reason: str, code: str = "PRECONDITION_FAILED"):
        super().__init__(code, reason, "")
        self.reason = reason


class DataShapeError(EsignError):
    """The provider answered successfully but the payload is unusable (e.g. an empty list)."""

    def __init__(self, code: str, reason: str, request_id: str = ""):
        super().__init__(code, reason, request_id)
        self.reason = reason


class ConfigurationError(EsignError):
    """Credentials or endpoint settings are missing."""

    def __init__(self, reason: str):
        super().__init__("CONFIGURATION_ERROR", reason, "")
        self.reason = reason
