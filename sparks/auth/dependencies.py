import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sparks.auth import jwt_handler
from sparks.database import SessionLocal
from sparks.models.user import User

security = HTTPBearer()

NORMAL_USER = "NORMAL_USER"
PARENT_GUARDIAN = "PARENT_GUARDIAN"
THERAPIST = "THERAPIST"
ADMIN = "ADMIN"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = None
    if str(subject).isdigit():
        user = db.get(User, int(subject))
    if user is None:
        user = db.query(User).filter(User.email == subject).first()
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_role(user: User, *roles: str) -> User:
    if user.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this resource.",
        )
    return user
