from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bidding import AuctionService, UpdateBroadcaster
from utils import log

logger = log.get_logger(__name__)

security = HTTPBearer(auto_error=False)

ROLES = ("buyer", "supplier")


def get_auction_service(request: Request) -> AuctionService:
    service = getattr(request.app.state, "auction_service", None)
    if service is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auction service not ready")
    return service


def get_broadcaster(service: AuctionService = Depends(get_auction_service)) -> UpdateBroadcaster:
    return service.broadcaster


async def current_user_get(
    request: Request,
    token: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> dict:
    """Identify the caller.

    With an auth client configured the bearer token is verified and its
    claims are returned. Without one, the trusted gateway headers
    ``X-User-Id`` / ``X-User-Role`` stand in for the claims.
    """
    auth_client = getattr(request.app.state, "auth_client", None)
    if auth_client is not None:
        if token is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
        if payload := auth_client.decode_jwt(token.credentials):
            if not payload.get("sub"):
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no subject")
            return payload
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    roles = [x_user_role.lower()] if x_user_role else []
    return {"sub": x_user_id, "roles": roles}


def _roles(user: dict) -> list:
    roles = user.get("roles", [])
    if isinstance(roles, str):
        roles = [roles]
    return roles


def _require_role(role: str):
    async def dependency(user: dict = Depends(current_user_get)) -> dict:
        if role not in _roles(user):
            logger.warning(f"User {user.get('sub')} attempted {role} access. Roles: {_roles(user)}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{role.capitalize()} privileges required",
            )
        return user

    return dependency


require_buyer = _require_role("buyer")
require_supplier = _require_role("supplier")
