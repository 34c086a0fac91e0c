import hmac

from fastapi import Depends, Header, Request

from backend.app.core.config import settings
from backend.app.core.errors import Forbidden
from backend.app.services.engine import SchedulingEngine
from backend.app.services.models import Identity


def get_engine(request: Request) -> SchedulingEngine:
    return request.app.state.engine


def _is_staff_token(token: str | None) -> bool:
    expected = settings.STAFF_API_TOKEN
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode(), expected.encode())


async def get_identity(
    x_user_id: str | None = Header(default=None),
    x_staff_token: str | None = Header(default=None),
) -> Identity:
    """Caller identity as forwarded by the identity layer in front of this service."""
    return Identity(user_id=x_user_id or None, is_staff=_is_staff_token(x_staff_token))


async def require_staff(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_staff:
        raise Forbidden("Staff privilege required")
    return identity


async def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.user_id is None:
        raise Forbidden("An X-User-Id header is required")
    return identity
