from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User


def get_current_user(
    x_user_id: UUID | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    Temporary placeholder auth dependency.

    An `X-User-Id` header picks the user; without it the oldest user is used
    so a single-user dev database works out of the box. Replace with real
    auth once available.
    """
    query = db.query(User)
    if x_user_id is not None:
        user = query.filter(User.id == x_user_id).first()
    else:
        user = query.order_by(User.created_at.asc()).first()
    if not user:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
