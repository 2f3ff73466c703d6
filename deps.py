# deps.py
# Dependency injections for routes: database session, audit sink, authentication and role checks.

import logging
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

import auth_utils
import crud
from audit_service import AuditService
from document_service import DocumentService
from config import Settings
from exceptions import AuthenticationError, AuthorizationError
from models import User

log = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# -----------------------
#  APPLICATION STATE
# -----------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings

SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    async with request.app.state.session_factory() as session:
        yield session

SessionDep = Annotated[AsyncSession, Depends(get_db)]


def get_audit(request: Request) -> AuditService:
    return request.app.state.audit

AuditDep = Annotated[AuditService, Depends(get_audit)]


def get_documents(request: Request) -> DocumentService:
    return request.app.state.documents

DocumentsDep = Annotated[DocumentService, Depends(get_documents)]


# ------------------------------------------------
#  TOKEN HANDLING
# ------------------------------------------------
async def get_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        log.warning("Authentication failed: No token provided.")
        raise AuthenticationError()
    return credentials.credentials

TokenDep = Annotated[str, Depends(get_token)]


async def get_current_user(db: SessionDep, token: TokenDep, app_settings: SettingsDep) -> User:
    """
    Resolve the user behind an `Authorization: Bearer <token>` header.
    The role is re-read from the database so demotions take effect immediately.
    """
    payload = auth_utils.decode_access_token(
        token, secret_key=app_settings.SECRET_KEY, algorithm=app_settings.ALGORITHM
    )
    if payload is None or not str(payload.get("sub", "")).isdigit():
        log.warning("Authentication failed: Invalid or expired token.")
        raise AuthenticationError()

    if await crud.is_token_blacklisted(db, token):
        log.warning("Authentication failed: Token has been blacklisted (user logged out).")
        raise AuthenticationError()

    user = await crud.get_user(db, int(payload["sub"]))
    if user is None or not user.is_active:
        log.warning(f"Authentication failed: User {payload.get('sub')} not found or inactive.")
        raise AuthenticationError()

    return user

CurrentUserDep = Annotated[User, Depends(get_current_user)]


# -----------------------
#  ROLE CHECKS
# -----------------------
def require_role(*allowed_roles: str):
    async def check_role(current_user: CurrentUserDep) -> User:
        if not auth_utils.has_role(current_user, *allowed_roles):
            raise AuthorizationError()
        return current_user

    return check_role

EmployeeDep = Annotated[User, Depends(require_role("EMPLOYEE"))]
CustomerDep = Annotated[User, Depends(require_role("CUSTOMER"))]
