from fastapi import Depends, Header, Request

from app.posledger.core.error_catalog import ValidationFailedError
from app.posledger.db.models import User
from app.posledger.db.session import get_db

ACTOR_HEADER = "X-User-ID"


def require_actor_id(
    request: Request,
    x_user_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    db=Depends(get_db),
) -> int:
    """Resolve the acting user from the request header; authentication happens upstream."""
    if not x_user_id:
        raise ValidationFailedError(details={"message": f"{ACTOR_HEADER} header is required"})
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise ValidationFailedError(
            details={"message": f"{ACTOR_HEADER} must be an integer", "value": x_user_id}
        ) from exc
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise ValidationFailedError(details={"message": "unknown or inactive user", "user_id": user_id})
    request.state.user_id = user_id
    return user_id


__all__ = ["ACTOR_HEADER", "require_actor_id"]
