from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlmodel import select

from config import get_settings
from db import SessionDep
from models import User
from schemas import LoginData, ProfileUpdate, UserCreate, UserRead

router = APIRouter(tags=["auth"])

settings = get_settings()
serializer = URLSafeTimedSerializer(settings.secret_key)

SESSION_COOKIE = "session"


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int, role: str) -> str:
    """
    Store user_id + role in the signed token.
    Example data:
        {"user_id": 3, "role": "volunteer"}
    """
    return serializer.dumps({"user_id": user_id, "role": role})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None):
    """
    Returns dict {'user_id': ..., 'role': ...} if valid,
    or None if token is invalid/expired.
    """
    if max_age_seconds is None:
        max_age_seconds = settings.session_max_age_seconds
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadSignature:
        return None


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=settings.session_max_age_seconds,
    )


def get_current_user_and_role(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> dict:
    """
    Reads the 'session' cookie, verifies the token,
    looks up the user, and returns {"user": User, "role": str}.
    Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Not logged in")

    data = verify_session_token(session_token)
    if not data:
        raise HTTPException(
            status_code=401, detail="Invalid or expired session")

    user = session.get(User, data["user_id"])
    if user is None:
        raise HTTPException(
            status_code=401, detail="User not found for this session")

    return {"user": user, "role": data["role"]}


UserRoleDep = Annotated[dict, Depends(get_current_user_and_role)]


@router.post("/register", status_code=201)
def register(user_in: UserCreate, session: SessionDep, response: Response):
    """
    Register a new user with a hashed password and log them in.
    The first role the user holds becomes the active one.
    """
    if user_in.is_donor:
        role = "donor"
    elif user_in.is_volunteer:
        role = "volunteer"
    else:
        raise HTTPException(
            status_code=400,
            detail="User must be registered as donor or volunteer",
        )

    existing = session.exec(
        select(User).where(User.email == user_in.email)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=user_in.email,
        name=user_in.name,
        password_hash=hash_password(user_in.password),
        is_donor=user_in.is_donor,
        is_volunteer=user_in.is_volunteer,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    set_session_cookie(response, create_session_token(user.id, role))
    return {
        "message": "Registration successful",
        "role": role,
        "user": UserRead.model_validate(user),
    }


@router.post("/login")
def login(payload: LoginData, session: SessionDep, response: Response):
    """
    Log in with email + password + chosen role ("donor" / "volunteer"),
    set a signed cookie.
    """
    user = session.exec(
        select(User).where(User.email == payload.email)
    ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=400, detail="Invalid email or password"
        )

    if payload.role not in user.roles:
        raise HTTPException(
            status_code=400,
            detail=f"User is not registered as {payload.role}",
        )

    set_session_cookie(response, create_session_token(user.id, payload.role))
    return {"message": "Login successful", "role": payload.role}


@router.post("/logout")
def logout(response: Response):
    """
    Clear the session cookie.
    """
    response.delete_cookie(SESSION_COOKIE)
    return {"message": "Logged out"}


@router.get("/me")
def read_me(current: UserRoleDep):
    """
    Get info about the currently logged-in user + active role.
    """
    user = current["user"]
    return {
        **UserRead.model_validate(user).model_dump(),
        "role": current["role"],
        "roles": sorted(user.roles),
    }


@router.put("/profile")
def update_profile(payload: ProfileUpdate, current: UserRoleDep, session: SessionDep):
    """
    Update name, phone or location of the logged-in user.
    Fields missing from the body keep their value.
    """
    user = current["user"]
    for field, value in payload.model_dump(exclude_unset=True).items():
        # Only the phone can be cleared
        if value is None and field != "phone":
            continue
        setattr(user, field, value)

    session.add(user)
    session.commit()
    session.refresh(user)
    return {
        "message": "Profile updated successfully",
        "user": UserRead.model_validate(user),
    }
