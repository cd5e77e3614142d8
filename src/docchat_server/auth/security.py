"""
Management API Authentication

Callers of the management endpoints (uploads, listing, search, direct chat)
present an HS256 bearer JWT minted by an operator tool. This service only
verifies tokens; it never issues them.

Token claims
------------
- iss / aud: must equal settings.jwt_issuer / settings.jwt_audience
- sub: operator or service name
- scope: list of granted operations (`files:read`, `files:write`,
  `search`, `chat`)
- iat / exp: required

The messaging webhook is not JWT-protected: the platform echoes a shared
secret in `X-Telegram-Bot-Api-Secret-Token`, checked by
`verify_webhook_secret` when a secret is configured.
"""

from __future__ import annotations

import hmac
from typing import Callable, Optional, Tuple, Type

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import settings
from .models import Principal


bearer_scheme = HTTPBearer(auto_error=True)

REQUIRED_CLAIMS = ["iss", "aud", "iat", "exp", "sub", "scope"]

# Most specific first: the PyJWT errors below all subclass InvalidTokenError.
_TOKEN_ERRORS: Tuple[Tuple[Type[jwt.InvalidTokenError], str], ...] = (
    (jwt.ExpiredSignatureError, "Token has expired."),
    (jwt.InvalidAudienceError, "Invalid token audience."),
    (jwt.InvalidIssuerError, "Invalid token issuer."),
    (jwt.MissingRequiredClaimError, "Token is missing a required claim."),
    (jwt.InvalidTokenError, "Invalid or malformed token."),
)


class AuthConfigurationError(RuntimeError):
    """The service cannot verify tokens because it is misconfigured."""


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _signing_key() -> str:
    secret = settings.jwt_secret.get_secret_value()
    if not secret or not settings.jwt_algo:
        raise AuthConfigurationError("jwt_secret and jwt_algo must be configured")
    return secret


def decode_management_token(token: str) -> dict:
    """
    Verify signature and registered claims of a management token.

    Raises
    ------
    AuthConfigurationError
        If no signing secret is configured.
    jwt.InvalidTokenError
        Or one of its subclasses, for any verification failure.
    """
    return jwt.decode(
        token,
        _signing_key(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={"require": REQUIRED_CLAIMS},
    )


def verify_bearer_token(
    creds: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:
    """
    FastAPI dependency: turn a bearer token into a Principal.

    Verification failures are 401; a missing signing secret is a 500 since
    no caller can fix it.
    """
    try:
        claims = decode_management_token(creds.credentials)
    except AuthConfigurationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )
    except jwt.InvalidTokenError as exc:
        detail = next(msg for err, msg in _TOKEN_ERRORS if isinstance(exc, err))
        raise _unauthorized(detail)

    scopes = claims["scope"]
    if not isinstance(scopes, list) or not all(isinstance(s, str) for s in scopes):
        raise _unauthorized("'scope' claim must be a list of strings.")

    return Principal(subject=str(claims["sub"]), scopes=scopes)


def require_scopes(*required_scopes: str) -> Callable[..., Principal]:
    """
    Build a dependency that admits only principals holding every scope in
    `required_scopes`; others get 403.

        @router.post("/files")
        async def upload(principal = Depends(require_scopes("files:write"))):
            ...
    """

    def check_scopes(
        principal: Principal = Depends(verify_bearer_token),
    ) -> Principal:
        missing = [scope for scope in required_scopes if scope not in principal.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scope(s): {', '.join(missing)}",
            )
        return principal

    return check_scopes


def verify_webhook_secret(
    x_telegram_bot_api_secret_token: Optional[str] = Header(
        None, alias="X-Telegram-Bot-Api-Secret-Token"
    ),
) -> None:
    """
    Reject webhook calls whose secret header does not match the configured
    one. No configured secret means no check.
    """
    expected = settings.telegram_secret_token.get_secret_value()
    if not expected:
        return

    provided = (x_telegram_bot_api_secret_token or "").encode("utf-8")
    if not hmac.compare_digest(provided, expected.encode("utf-8")):
        raise _unauthorized("Invalid secret token")
