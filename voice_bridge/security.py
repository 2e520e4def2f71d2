"""
Webhook signature verification.

The sender signs each request with HMAC-SHA1 over the full request URL
followed by every form parameter (sorted by name, name then value, no
separators), base64-encoded, and sends it in the X-Twilio-Signature header.
Verification fails closed: any error counts as a failed check.
"""

import base64
import hashlib
import hmac
import re
from typing import Any, Mapping, Optional, Sequence, Union

import structlog

logger = structlog.get_logger(__name__)

_LOCAL_HOST_RE = re.compile(r'localhost|127\.0\.0\.1', re.IGNORECASE)

ParamValue = Union[str, Sequence[str]]


def build_base_url(host: Optional[str], force_http: bool = False) -> str:
    """
    Build the scheme + host part of the URL the sender signed.

    https is assumed; http only for local hosts or when explicitly forced.
    """
    host = host or ''
    is_local = bool(_LOCAL_HOST_RE.search(host)) or force_http
    proto = 'http' if is_local else 'https'
    return f"{proto}://{host}"


def _param_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ''.join(_param_text(v) for v in value)
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if value is None:
        return ''
    return str(value)


def signature_payload(url: str, params: Mapping[str, ParamValue]) -> str:
    """Canonical string the sender signs: URL + sorted name/value pairs."""
    data = url
    for name in sorted(params.keys()):
        data += name + _param_text(params[name])
    return data


def compute_signature(url: str, params: Mapping[str, ParamValue], auth_token: str) -> str:
    digest = hmac.new(
        auth_token.encode('utf-8'),
        signature_payload(url, params).encode('utf-8'),
        hashlib.sha1,
    ).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_signature(
    url: str,
    params: Mapping[str, ParamValue],
    signature: Optional[str],
    auth_token: Optional[str],
) -> bool:
    """Return True only when ``signature`` matches the expected value.

    Pure function of its inputs. Missing token, missing signature or any
    error while rebuilding the payload yields False.
    """
    if not auth_token or not signature:
        return False
    try:
        expected = compute_signature(url, params, auth_token)
        return hmac.compare_digest(expected.encode('utf-8'), signature.encode('utf-8'))
    except Exception as exc:
        logger.warning("Signature verification error", error=str(exc))
        return False


def verify_request(
    request,
    params: Mapping[str, ParamValue],
    auth_token: Optional[str],
    *,
    force_http: bool = False,
    header: str = "X-Twilio-Signature",
) -> bool:
    """Verify an aiohttp request against its parsed form parameters."""
    try:
        url = f"{build_base_url(request.host, force_http)}{request.raw_path}"
        signature = request.headers.get(header, '')
    except Exception as exc:
        logger.warning("Could not reconstruct signed URL", error=str(exc))
        return False
    return verify_signature(url, params, signature, auth_token)
