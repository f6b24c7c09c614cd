"""
TC3-HMAC-SHA256 request signing for Tencent Cloud APIs.

Builds the canonical request, derives the date-scoped signing key and produces
the ``Authorization`` header. A signed request is valid for one call only: the
signature is bound to the payload, the action and the current second.
"""

import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from .errors import ConfigurationError

ALGORITHM = "TC3-HMAC-SHA256"
CONTENT_TYPE = "application/json; charset=utf-8"
SIGNED_HEADERS = "content-type;host;x-tc-action"
TERMINATION = "tc3_request"


@dataclass(frozen=True)
class SignedRequest:
    url: str
    method: str
    headers: Dict[str, str]
    body: str


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hmac_sha256(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def format_date(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")


def serialize_payload(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def build_canonical_request(action: str, host: str, hashed_payload: str) -> str:
    canonical_headers = f"content-type:{CONTENT_TYPE}\nhost:{host}\nx-tc-action:{action.lower()}\n"
    return "\n".join(["POST", "/", "", canonical_headers, SIGNED_HEADERS, hashed_payload])


def build_string_to_sign(timestamp: int, credential_scope: str, canonical_request: str) -> str:
    return "\n".join([ALGORITHM, str(timestamp), credential_scope, sha256_hex(canonical_request)])


def calculate_signature(secret_key: str, date: str, service: str, string_to_sign: str) -> str:
    """Derive the signing key and sign; always 64 lowercase hex characters."""
    secret_date = hmac_sha256(f"TC3{secret_key}".encode("utf-8"), date)
    secret_service = hmac_sha256(secret_date, service)
    secret_signing = hmac_sha256(secret_service, TERMINATION)
    return hmac.new(secret_signing, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_request(
    *,
    action: str,
    version: str,
    payload: Dict[str, Any],
    secret_id: str,
    secret_key: str,
    host: str,
    service: str,
    region: str = "",
    timestamp: Optional[int] = None,
) -> SignedRequest:
    if not secret_id or not secret_key:
        raise ConfigurationError("Tencent Cloud API credentials are not configured (secret id / secret key)")

    timestamp = timestamp if timestamp is not None else int(time.time())
    date = format_date(timestamp)

    body = serialize_payload(payload)
    canonical_request = build_canonical_request(action, host, sha256_hex(body))
    credential_scope = f"{date}/{service}/{TERMINATION}"
    string_to_sign = build_string_to_sign(timestamp, credential_scope, canonical_request)
    signature = calculate_signature(secret_key, date, service, string_to_sign)

    authorization = (
        f"{ALGORITHM} Credential={secret_id}/{credential_scope}, "
        f"SignedHeaders={SIGNED_HEADERS}, Signature={signature}"
    )
    headers = {
        "Content-Type": CONTENT_TYPE,
        "Host": host,
        "X-TC-Action": action,
        "X-TC-Version": version,
        "X-TC-Timestamp": str(timestamp),
        "Authorization": authorization,
    }
    if region:
        headers["X-TC-Region"] = region

    return SignedRequest(url=f"https://{host}", method="POST", headers=headers, body=body)


def verify_callback_signature(
    raw_body: str,
    signature: str,
    timestamp: Union[int, str],
    secret_key: str,
    *,
    now: Optional[int] = None,
    tolerance_seconds: int = 300,
) -> bool:
    """Check a provider callback: fresh timestamp and HMAC over ``"{timestamp}\\n{body}"``."""
    if not secret_key:
        raise ConfigurationError("Tencent Cloud API secret key is not configured")

    try:
        timestamp = int(timestamp)
    except (TypeError, ValueError):
        return False

    now = now if now is not None else int(time.time())
    if abs(now - timestamp) > tolerance_seconds:
        return False

    expected = hmac.new(
        secret_key.encode("utf-8"),
        f"{timestamp}\n{raw_body}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8"))
