from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Query, Request, status
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession
import logging, crud

import auth_utils
from config import settings
from date_utils import utcnow
from deps import AuditDep, CurrentUserDep, EmployeeDep, SessionDep, SettingsDep, TokenDep
from exceptions import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from models import User
from rate_limit import limiter
from schemas import (
    ExistsResponse,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    PasswordResetLinkResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserOut,
)

auth_router = APIRouter(tags=["auth"])
log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
RESET_REQUESTED_MESSAGE = "If an account exists with this email, a password reset request has been sent to our team."
_email_adapter = TypeAdapter(EmailStr)


def _reference_number() -> str:
    return f"REF-{int(utcnow().timestamp() * 1000)}"


def _normalise_email(email: Optional[str]) -> str:
    try:
        return _email_adapter.validate_python((email or "").strip()).lower()
    except PydanticValidationError:
        raise ValidationError("Invalid email address")


async def _create_customer_profile(db: AsyncSession, user: User, payload: RegisterRequest) -> None:
    """
    Insert the DRAFT customer row of a new user. On failure the user row is
    deleted again so the email can be reused; the original error is re-raised.
    """
    try:
        await crud.create_customer(
            db,
            user.id,
            first_name=payload.firstName,
            last_name=payload.lastName,
            date_of_birth=payload.dateOfBirth,
            phone=payload.phone,
            address_line1=payload.address,
            city=payload.city,
            postal_code=payload.postalCode,
            country=payload.country,
            id_number=payload.idNumber,
            annual_income=payload.annualIncome,
            employment_status=payload.employmentStatus,
            account_type=payload.accountType,
            initial_deposit=payload.initialDeposit,
        )
    except Exception:
        log.error(f"Customer profile insert failed for user {user.id}, removing user", exc_info=True)
        await db.rollback()
        try:
            await crud.delete_user(db, user.id)
        except Exception:
            log.exception(f"Rollback delete of user {user.id} failed")
        raise


@auth_router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
async def register_user(payload: RegisterRequest, db_session: SessionDep, audit: AuditDep, request: Request):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password are required")
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    email = _normalise_email(payload.email)

    if await crud.get_user_by_email(db_session, email):
        raise ConflictError("Email already exists")

    role = "EMPLOYEE" if (payload.role or "").strip().upper() == "EMPLOYEE" else "CUSTOMER"
    new_user = await crud.create_user(
        db_session, email=email, password_hash=auth_utils.get_password_hash(payload.password), role=role
    )

    if role == "EMPLOYEE":
        await audit.log_action("REGISTER", "EMPLOYEE", new_user.id, details=f"Created employee {new_user.id}", user=new_user, request=request)
        log.info(f"Employee account {new_user.id} registered")
        return RegisterResponse(userId=new_user.id, message="Employee account created.", referenceNumber=_reference_number())

    await _create_customer_profile(db_session, new_user, payload)
    await audit.log_action("REGISTER", "USER", new_user.id, details=f"Created user {new_user.id}", user=new_user, request=request)
    log.info(f"Customer account {new_user.id} registered")
    return RegisterResponse(
        userId=new_user.id,
        message="Registration successful! Your application is being reviewed.",
        referenceNumber=_reference_number(),
    )


async def _login(payload: LoginRequest, role: str, db_session: AsyncSession, app_settings, audit, request: Request) -> LoginResponse:
    if not payload.email or not payload.password:
        raise ValidationError("Email and password required")

    user = await crud.get_user_by_email(db_session, payload.email.strip().lower())
    if user is None or not user.is_active or not auth_utils.verify_password(payload.password, user.password_hash):
        await audit.log_action("LOGIN", "USER", user.id if user else None, result="FAILURE", details="Invalid credentials", request=request)
        raise AuthenticationError("Invalid credentials")

    if not auth_utils.has_role(user, role):
        await audit.log_action("LOGIN", "USER", user.id, result="FAILURE", details=f"Not authorized as {role}", user=user, request=request)
        raise AuthorizationError(f"User not authorized as {role}")

    token = auth_utils.create_user_token(
        user,
        expires_minutes=app_settings.ACCESS_TOKEN_EXPIRE_MINUTES,
        secret_key=app_settings.SECRET_KEY,
        algorithm=app_settings.ALGORITHM,
    )
    await audit.log_action("LOGIN", "USER", user.id, user=user, request=request)
    log.info(f"User {user.id} logged in as {role}")
    return LoginResponse(token=token, user=UserOut.model_validate(user))


@auth_router.post("/customer/login", response_model=LoginResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def customer_login(payload: LoginRequest, db_session: SessionDep, app_settings: SettingsDep, audit: AuditDep, request: Request):
    return await _login(payload, "CUSTOMER", db_session, app_settings, audit, request)


@auth_router.post("/employee/login", response_model=LoginResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def employee_login(payload: LoginRequest, db_session: SessionDep, app_settings: SettingsDep, audit: AuditDep, request: Request):
    return await _login(payload, "EMPLOYEE", db_session, app_settings, audit, request)


@auth_router.post("/logout", response_model=MessageResponse)
async def logout(
    current_user: CurrentUserDep,
    token: TokenDep,
    db_session: SessionDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    """Blacklist the presented token until it would have expired anyway."""
    payload = auth_utils.decode_access_token(token, secret_key=app_settings.SECRET_KEY, algorithm=app_settings.ALGORITHM)
    expires_at: datetime = auth_utils.token_expiry(payload) if payload and "exp" in payload else utcnow()
    await crud.blacklist_token(db_session, token, current_user.id, expires_at)
    await audit.log_action("LOGOUT", "USER", current_user.id, user=current_user, request=request)
    log.info(f"User {current_user.id} logged out")
    return MessageResponse(message="Logged out successfully")


@auth_router.get("/me", response_model=MeResponse)
async def get_current_user_info(current_user: CurrentUserDep, db_session: SessionDep):
    """Get current authenticated user info."""
    customer = await crud.get_customer_by_user_id(db_session, current_user.id)
    return MeResponse(user=UserOut.model_validate(current_user), customerId=customer.id if customer else None)


@auth_router.get("/check-email", response_model=ExistsResponse)
async def check_email(db_session: SessionDep, email: Annotated[Optional[str], Query()] = None):
    if not email:
        raise ValidationError("Email is required")
    return ExistsResponse(exists=await crud.get_user_by_email(db_session, email.strip()) is not None)


@auth_router.get("/check-id", response_model=ExistsResponse)
async def check_id_number(db_session: SessionDep, id_number: Annotated[Optional[str], Query()] = None):
    if not id_number:
        raise ValidationError("ID is required")
    return ExistsResponse(exists=await crud.id_number_exists(db_session, id_number.strip()))


# -----------------------
#  PASSWORD RESET
# -----------------------
@auth_router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def forgot_password(payload: ForgotPasswordRequest, db_session: SessionDep, audit: AuditDep, request: Request):
    """
    Record a password reset request for the employee team, who send the
    customer a reset link. The response never reveals whether the email
    belongs to an account.
    """
    if not payload.email or not payload.email.strip():
        raise ValidationError("Email required")

    user = await crud.get_user_by_email(db_session, payload.email.strip().lower())
    if user is not None and user.is_active:
        await audit.log_action("PASSWORD_RESET_REQUEST", "USER", user.id, user=user, request=request)
        log.info(f"Password reset requested for user {user.id}")
    else:
        log.info("Password reset requested for an unknown or inactive email")
    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@auth_router.post("/users/{user_id}/password-reset-link", response_model=PasswordResetLinkResponse)
async def issue_password_reset_link(
    user_id: int,
    db_session: SessionDep,
    current_user: EmployeeDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    """Signed, time-limited reset link for a user; the employee hands it over."""
    user = await crud.get_user(db_session, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")

    token = auth_utils.create_password_reset_token(
        user,
        expires_minutes=app_settings.PASSWORD_RESET_EXPIRE_MINUTES,
        secret_key=app_settings.SECRET_KEY,
        algorithm=app_settings.ALGORITHM,
    )
    await audit.log_action("ISSUE_PASSWORD_RESET", "USER", user.id, user=current_user, request=request)
    log.info(f"Employee {current_user.id} issued a password reset link for user {user.id}")
    return PasswordResetLinkResponse(
        url=f"{app_settings.PASSWORD_RESET_URL}?token={token}",
        expiresIn=app_settings.PASSWORD_RESET_EXPIRE_MINUTES * 60,
    )


@auth_router.post("/reset-password", response_model=MessageResponse)
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def reset_password(
    payload: ResetPasswordRequest,
    db_session: SessionDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    """
    Set a new password with a reset token. The token is bound to the old
    password hash, so it works once.
    """
    if not payload.token or not payload.newPassword:
        raise ValidationError("Invalid payload")
    if len(payload.newPassword) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")

    claims = auth_utils.decode_password_reset_token(
        payload.token, secret_key=app_settings.SECRET_KEY, algorithm=app_settings.ALGORITHM
    )
    user = await crud.get_user(db_session, int(claims["sub"])) if claims else None
    if (
        user is None
        or not user.is_active
        or claims["fp"] != auth_utils.password_fingerprint(user.password_hash)
    ):
        await audit.log_action(
            "RESET_PASSWORD", "USER", user.id if user else None,
            result="FAILURE", details="Invalid reset token", request=request,
        )
        raise ValidationError("Invalid or expired reset token")

    await crud.update_user_password(db_session, user, auth_utils.get_password_hash(payload.newPassword))
    await audit.log_action("RESET_PASSWORD", "USER", user.id, user=user, request=request)
    log.info(f"Password reset for user {user.id}")
    return MessageResponse(message="Password reset successful")
