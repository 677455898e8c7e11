import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Response
from itsdangerous import BadData, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import Session, select

from config import get_settings
from db import SessionDep
from models import User
from schemas import LoginData, UserCreate, UserRead

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().secret_key, salt="aidlink-session")


def create_session_token(user_id: int) -> str:
    """
    Sign the user id into a token.
    Example data:
        {"user_id": 3}
    The role is not stored; it is read from the database on every request.
    """
    return _serializer().dumps({"user_id": user_id})


def verify_session_token(token: str) -> Optional[dict]:
    """
    Returns {'user_id': ...} if valid, or None if token is invalid/expired.
    """
    try:
        return _serializer().loads(token, max_age=get_settings().session_max_age_seconds)
    except BadData:
        return None


def _extract_token(authorization: Optional[str], cookie_token: Optional[str]) -> Optional[str]:
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value:
            return value.strip()
    return cookie_token


def get_current_user(
    session: SessionDep,
    authorization: Optional[str] = Header(default=None),
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> User:
    """
    Reads the bearer token (or the 'session' cookie), verifies it,
    and returns the User. Raises 401 if not logged in / invalid.
    """
    token = _extract_token(authorization, session_token)
    if token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    data = verify_session_token(token)
    if not data:
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    user = session.get(User, data["user_id"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found for this session")

    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""

    def checker(user: CurrentUserDep) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=403,
                detail="You do not have permission to perform this action",
            )
        return user

    return checker


AdminDep = Annotated[User, Depends(require_roles("admin"))]
DonorDep = Annotated[User, Depends(require_roles("donor", "admin"))]
RequesterDep = Annotated[User, Depends(require_roles("aid_requester"))]
VolunteerDep = Annotated[User, Depends(require_roles("volunteer"))]


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=get_settings().session_max_age_seconds,
    )


def ensure_admin(session: Session, email: str, password: str) -> User:
    """
    Create the seed admin account if no user holds that email yet.
    """
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        return existing
    admin = User(
        email=email,
        first_name="Admin",
        last_name="User",
        role="admin",
        password_hash=hash_password(password),
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)
    logger.info("Seeded admin account %s", email)
    return admin


@router.post("/signup", status_code=201)
def signup(user_in: UserCreate, session: SessionDep, response: Response) -> Any:
    """
    Register a new user with a hashed password.
    """
    if user_in.role == "admin":
        raise HTTPException(status_code=400, detail="Admin accounts cannot be created at signup")

    existing = session.exec(select(User).where(User.email == user_in.email)).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=user_in.email,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        role=user_in.role,
        password_hash=hash_password(user_in.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    if user.id is None:
        raise HTTPException(status_code=500, detail="User was not created successfully")

    logger.info("New %s account %s", user.role, user.id)
    token = create_session_token(user.id)
    _set_session_cookie(response, token)
    return {
        "status": "success",
        "token": token,
        "data": {"user": UserRead.model_validate(user)},
    }


@router.post("/login")
def login(payload: LoginData, session: SessionDep, response: Response) -> Any:
    """
    Log in with email + password. Returns a bearer token and also sets
    it as a signed cookie.
    """
    user = session.exec(select(User).where(User.email == payload.email)).first()
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if user.id is None:
        raise HTTPException(status_code=500, detail="User has no ID in database")

    token = create_session_token(user.id)
    _set_session_cookie(response, token)
    return {
        "status": "success",
        "token": token,
        "data": {"user": UserRead.model_validate(user)},
    }


@router.post("/logout")
def logout(response: Response) -> Any:
    """
    Clear the session cookie.
    """
    response.delete_cookie(SESSION_COOKIE)
    return {"status": "success", "data": None}
