"""Upload error taxonomy and provider error parsing"""
import json
from typing import Any, Dict, Optional, Tuple

import httpx


class UploadError(Exception):
    """Base class for every failure an upload attempt can end with"""

    def __init__(self, message: str, platform: Optional[str] = None,
                 code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.code = code
        self.details = details


class UploadValidationError(UploadError):
    """Preconditions failed (no video selected, account not connected)"""


class AuthError(UploadError):
    """Access token invalid/expired or scope missing"""
    needs_reauth = True


class RateLimitError(UploadError):
    """Provider throttled the request"""


class PlatformPolicyError(UploadError):
    """Provider refused the post for account/app policy reasons"""


class TransportError(UploadError):
    """Network failure or unexpected HTTP status"""

    def __init__(self, message: str, platform: Optional[str] = None,
                 code: Optional[str] = None, details: Any = None,
                 status_code: Optional[int] = None):
        super().__init__(message, platform=platform, code=code, details=details)
        self.status_code = status_code


class UploadTimeoutError(UploadError):
    """Status polling or the overall upload exceeded its time budget"""


class UploadCancelled(UploadError):
    """The user cancelled the upload; not a failure"""


def parse_error_payload(response: httpx.Response) -> Tuple[Optional[str], str, Any]:
    """Best-effort extraction of (code, message, payload) from a provider error response

    Handles Google's ``{"error": {"code": 401, "message": ..., "errors": [...]}}``,
    TikTok's ``{"error": {"code": "...", "message": ...}}``, OAuth's
    ``{"error": "invalid_grant", "error_description": ...}`` and plain text bodies.
    """
    text = response.text or ""
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return None, text[:500] if text else f"HTTP {response.status_code}", text

    if not isinstance(payload, dict):
        return None, text[:500], payload

    error_obj = payload.get("error")
    if isinstance(error_obj, dict):
        code = error_obj.get("code")
        reasons = error_obj.get("errors") or []
        if reasons and isinstance(reasons[0], dict) and reasons[0].get("reason"):
            code = reasons[0]["reason"]
        message = error_obj.get("message") or payload.get("message") or text[:500]
        return (str(code) if code is not None else None), message, payload
    if isinstance(error_obj, str):
        message = payload.get("error_description") or payload.get("message") or error_obj
        return error_obj, message, payload

    return None, payload.get("message") or text[:500], payload


# TikTok error codes -> (exception class, user-facing message)
TIKTOK_ERROR_MAP: Dict[str, Tuple[type, str]] = {
    "access_token_invalid": (
        AuthError, "Invalid access token. Please reconnect your TikTok account."
    ),
    "scope_not_authorized": (
        AuthError, "Missing required permissions. Please reconnect your TikTok account."
    ),
    "rate_limit_exceeded": (
        RateLimitError, "Too many requests. Please wait a moment and try again."
    ),
    "spam_risk_user_banned": (
        PlatformPolicyError, "Account has been flagged for spam risk."
    ),
    "user_has_no_video_post_permission": (
        PlatformPolicyError, "Account does not have permission to post videos."
    ),
    "reached_active_user_cap": (
        PlatformPolicyError, "TikTok has reached its active user limit for this app."
    ),
    "unaudited_client_can_only_post_to_private_accounts": (
        PlatformPolicyError,
        "Videos can only be posted as private until the app is audited by TikTok.",
    ),
}
TIKTOK_ERROR_MAP["unaudited_client_can_only_post_to_private"] = (
    TIKTOK_ERROR_MAP["unaudited_client_can_only_post_to_private_accounts"]
)


def tiktok_error(code: Optional[str], message: str, details: Any = None,
                 status_code: Optional[int] = None) -> UploadError:
    """Map a TikTok error code onto the taxonomy; unknown codes pass through verbatim"""
    mapped = TIKTOK_ERROR_MAP.get(code or "")
    if mapped:
        error_cls, friendly = mapped
        return error_cls(friendly, platform="tiktok", code=code, details=details)
    return TransportError(
        f"TikTok API Error: {message}",
        platform="tiktok", code=code, details=details, status_code=status_code
    )


def youtube_error(response: httpx.Response, stage: str) -> UploadError:
    """Map a failed YouTube/Google response onto the taxonomy"""
    code, message, payload = parse_error_payload(response)
    text = f"YouTube {stage} failed: {message}"
    if response.status_code == 401:
        return AuthError(text, platform="youtube", code=code, details=payload)
    if code in ("quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded") or response.status_code == 429:
        return RateLimitError(text, platform="youtube", code=code, details=payload)
    if code in ("insufficientPermissions", "forbidden") and response.status_code == 403:
        return AuthError(text, platform="youtube", code=code, details=payload)
    if code in ("uploadLimitExceeded", "youtubeSignupRequired"):
        return PlatformPolicyError(text, platform="youtube", code=code, details=payload)
    return TransportError(
        text, platform="youtube", code=code, details=payload, status_code=response.status_code
    )
