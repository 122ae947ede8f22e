from __future__ import annotations

from typing import Dict, Optional


class CompanionError(Exception):
    """
    Base for every failure surfaced to a companion app.

    `code` is the stable string returned as `{"error": code}`;
    `status_code` is the HTTP status the gateway answers with.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None):
        super().__init__(message or self.code)
        self.headers = headers


# =========================
# AUTHORIZATION
# =========================

class AuthorizationTimeout(CompanionError):
    code = "AUTHORIZATION_TIMEOUT"
    status_code = 504


class AuthorizationDisabled(CompanionError):
    code = "AUTHORIZATION_DISABLED"
    status_code = 403


class AuthorizationInvalid(CompanionError):
    code = "AUTHORIZATION_INVALID"
    status_code = 400


class AuthorizationDenied(CompanionError):
    code = "AUTHORIZATION_DENIED"
    status_code = 403


# =========================
# SESSION
# =========================

class Unauthorized(CompanionError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(CompanionError):
    code = "FORBIDDEN"
    status_code = 403


# =========================
# UPSTREAM (embedded content)
# =========================

class ContentUnavailable(CompanionError):
    code = "YTM_UNAVAILABLE"
    status_code = 503


class ContentResultTimeout(CompanionError):
    code = "YTM_RESULT_TIMEOUT"
    status_code = 504


# =========================
# THROUGHPUT
# =========================

class RateLimited(CompanionError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, retry_after_s: float):
        super().__init__(headers={"Retry-After": str(max(1, int(retry_after_s + 0.999)))})
        self.retry_after_s = retry_after_s
