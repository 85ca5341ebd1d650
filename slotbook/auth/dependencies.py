import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.auth import jwt_handler
from slotbook.core.config import Settings
from slotbook.core.errors import BookingError, ErrorCode
from slotbook.models.user import User

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_session(request: Request):
    async with request.app.state.sessionmaker() as session:
        yield session


async def resolve_operator(
    credentials: HTTPAuthorizationCredentials | None,
    session: AsyncSession,
    settings: Settings,
) -> User:
    if credentials is None:
        raise BookingError(ErrorCode.UNAUTHORIZED, "Not authenticated")
    try:
        payload = jwt_handler.decode_access_token(credentials.credentials, settings)
    except jwt.PyJWTError as exc:
        raise BookingError(ErrorCode.UNAUTHORIZED, "Invalid token") from exc

    email = payload.get("sub")
    if not email:
        raise BookingError(ErrorCode.UNAUTHORIZED, "Invalid token subject")

    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    user = result.scalars().first()
    if user is None:
        raise BookingError(ErrorCode.UNAUTHORIZED, "User not found")
    return user


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> User:
    return await resolve_operator(credentials, session, settings)


def require_agency_owner(user: User) -> None:
    if user.role != "agency_owner":
        raise BookingError(ErrorCode.FORBIDDEN, "Only agency owners can manage clients")


def require_client_admin(user: User) -> None:
    if user.role not in ("agency_owner", "client_admin"):
        raise BookingError(ErrorCode.FORBIDDEN, "Only agency owners and client admins can change booking rules")
