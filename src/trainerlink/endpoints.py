"""Remote API paths and the public-endpoint allowlist.

Paths are relative to :attr:`~trainerlink.models.ClientConfig.base_url`.
The allowlist names the routes that unauthenticated clients reach by design:
the request pipeline never attaches a bearer token to them and never tries
to renew the session when they answer ``401``.
"""

from __future__ import annotations

from typing import Optional

LOGIN = "/api/system/auth/login/"
GOOGLE_LOGIN = "/api/system/auth/google-login/"
REGISTER = "/api/system/auth/register/"
LOGOUT = "/api/system/auth/logout/"
FORGOT_PASSWORD = "/api/system/auth/forgot-password/"
VERIFY_EMAIL = "/api/system/auth/verify-email/"
VERIFY_FORGOT_PASSWORD = "/api/system/auth/verify-forgot-password/"
RESEND_OTP = "/api/system/auth/resend-verification-code/"
CHANGE_PASSWORD = "/api/system/auth/change-password/"
WHOAMI = "/api/system/auth/whoami/"
CHECK_EMAIL = "/api/system/auth/check-email-exists/"
UPDATE_PROFILE = "/api/system/auth/update-profile/"

TOKEN_REFRESH = "/api/token/refresh/"

TRAINER_REGISTER = "/api/trainer/register/"

PUBLIC_ENDPOINTS: tuple[str, ...] = (
    LOGIN,
    REGISTER,
    GOOGLE_LOGIN,
    FORGOT_PASSWORD,
    VERIFY_EMAIL,
    VERIFY_FORGOT_PASSWORD,
    RESEND_OTP,
    CHANGE_PASSWORD,
)


def is_public_endpoint(url: Optional[str]) -> bool:
    """Return ``True`` if *url* targets one of the :data:`PUBLIC_ENDPOINTS`.

    Matching is by containment so that both relative paths and absolute
    URLs (with or without a query string) are recognised.
    """
    if not url:
        return False
    return any(endpoint in url for endpoint in PUBLIC_ENDPOINTS)
