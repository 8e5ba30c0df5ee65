import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing_extensions import Annotated

from taskboard.core.errors import UnauthorizedError
from taskboard.core.security import TokenClaims, TokenError, decode_access_token
from taskboard.dependencies import SettingsDep

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


# PUBLIC_INTERFACE
async def get_current_user(
    request: Request,
    settings: SettingsDep,
    creds: HTTPAuthorizationCredentials | None = Depends(_security),
) -> TokenClaims:
    """
    Resolve the bearer token on the request into its identity claims.

    Raises:
        UnauthorizedError if the header is missing, or the token fails
        signature or expiry verification.

    The claims are also attached to `request.state.user` for downstream code.
    """
    if creds is None or not creds.credentials:
        raise UnauthorizedError("Token not sent")

    try:
        claims = decode_access_token(
            creds.credentials, settings.jwt_secret, algorithm=settings.jwt_algorithm
        )
    except TokenError as e:
        logger.info("Rejected bearer token: %s", e)
        raise UnauthorizedError("Invalid or expired token") from e

    request.state.user = claims
    return claims


CurrentUser = Annotated[TokenClaims, Depends(get_current_user)]
