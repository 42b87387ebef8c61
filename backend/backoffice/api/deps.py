"""
FastAPI dependencies for staff authentication, sessions and shared services.

Staff are identified by a bearer JWT issued elsewhere, carrying the actor id
in ``sub`` and the staff role in ``role``.
"""

from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.config import get_settings
from backoffice.core.logging import get_logger, set_actor_id
from backoffice.database.connection import get_db
from backoffice.services.notifications.channels import NotificationChannel
from backoffice.services.orders.enums import StaffRole
from backoffice.services.rate_limit.limiter import RateLimiter

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]


@dataclass(frozen=True)
class StaffActor:
    id: str
    role: StaffRole

    @property
    def is_manager(self) -> bool:
        return self.role.is_manager


async def get_current_actor(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> StaffActor:
    """
    Validate the staff JWT.

    Raises:
        HTTPException: 401 if the token is missing, invalid or expired
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    settings = get_settings()
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        logger.warning(
            "Authentication failed: JWT validation error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise credentials_exception from e

    actor_id = payload.get("sub")
    raw_role = payload.get("role")
    if not actor_id or not raw_role:
        logger.warning("Authentication failed: Token missing 'sub' or 'role' claim")
        raise credentials_exception

    try:
        role = StaffRole(str(raw_role).lower())
    except ValueError:
        logger.warning("Authentication failed: Unknown role", role=raw_role)
        raise credentials_exception from None

    set_actor_id(str(actor_id))
    return StaffActor(id=str(actor_id), role=role)


CurrentActor = Annotated[StaffActor, Depends(get_current_actor)]


def require_role(*allowed_roles: StaffRole):
    """
    Create a dependency that requires specific staff roles.

    Example:
        @router.post("/counts")
        async def submit(actor: Annotated[StaffActor, Depends(require_role(StaffRole.ADMIN))]):
            ...
    """

    async def role_checker(actor: CurrentActor) -> StaffActor:
        if actor.role not in allowed_roles:
            logger.warning(
                "Access denied: Insufficient permissions",
                actor_id=actor.id,
                role=actor.role.value,
                required_roles=[r.value for r in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return role_checker


ManagerActor = Annotated[StaffActor, Depends(require_role(StaffRole.ADMIN, StaffRole.MANAGER))]


def get_client_id(request: Request) -> str:
    """
    Identify a storefront client for rate limiting.

    The peer address is used unless the API runs behind
    ``trusted_proxy_count`` reverse proxies. Each of them appends the address
    it received the request from to ``X-Forwarded-For``, so the client is the
    hop the outermost trusted proxy added; anything before it is client
    supplied and ignored.
    """
    proxies = get_settings().trusted_proxy_count
    if proxies:
        hops = [
            hop.strip()
            for hop in request.headers.get("x-forwarded-for", "").split(",")
            if hop.strip()
        ]
        if len(hops) >= proxies:
            return hops[-proxies]
    return get_remote_address(request)


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_notifier(request: Request) -> Optional[NotificationChannel]:
    return getattr(request.app.state, "notifier", None)
