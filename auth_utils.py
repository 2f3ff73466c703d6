from datetime import datetime, timedelta, timezone
from typing import Optional
import hashlib

from passlib.context import CryptContext
from jose import JWTError, jwt

from config import settings

PASSWORD_RESET_PURPOSE = "password-reset"

# Password hashing context
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

def get_password_hash(password: str) -> str:
    """
    Hashes a password using the configured password context (argon2).
    """
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verifies a plain password against a stored hash.
    Malformed or missing hashes never verify.
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False

def has_role(user, *roles: str) -> bool:
    return (getattr(user, "role", None) or "").upper() in {role.upper() for role in roles}

def is_employee(user) -> bool:
    return has_role(user, "EMPLOYEE")

# -------------------------
# JWT Utilities
# -------------------------
def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Create JWT access token.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key or settings.SECRET_KEY, algorithm=algorithm or settings.ALGORITHM)

def create_user_token(
    user,
    expires_minutes: Optional[int] = None,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """Access token carrying the user's id, email and role."""
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    return create_access_token(
        {"sub": str(user.id), "email": user.email, "role": user.role},
        expires_delta=timedelta(minutes=minutes),
        secret_key=secret_key,
        algorithm=algorithm,
    )

def decode_access_token(token: str, secret_key: Optional[str] = None, algorithm: Optional[str] = None) -> Optional[dict]:
    """
    Decode JWT access token and return the full payload including expiration.
    Returns None if token is invalid or expired.
    """
    try:
        return jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[algorithm or settings.ALGORITHM])
    except JWTError:
        return None

def token_expiry(payload: dict) -> datetime:
    """Expiration of a decoded token as naive UTC."""
    return datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None)

# -------------------------
# Password reset tokens
# -------------------------
def password_fingerprint(password_hash: str) -> str:
    """Short digest of the stored hash; changes whenever the password does."""
    return hashlib.sha256(password_hash.encode("utf-8")).hexdigest()[:16]

def create_password_reset_token(
    user,
    expires_minutes: int,
    secret_key: Optional[str] = None,
    algorithm: Optional[str] = None,
) -> str:
    """
    Signed reset token bound to the user's current password hash,
    so it stops working once the password has been changed.
    """
    return create_access_token(
        {"sub": str(user.id), "purpose": PASSWORD_RESET_PURPOSE, "fp": password_fingerprint(user.password_hash)},
        expires_delta=timedelta(minutes=expires_minutes),
        secret_key=secret_key,
        algorithm=algorithm,
    )

def decode_password_reset_token(token: str, secret_key: Optional[str] = None, algorithm: Optional[str] = None) -> Optional[dict]:
    """Payload of a valid reset token, None for anything else (access tokens included)."""
    payload = decode_access_token(token, secret_key=secret_key, algorithm=algorithm)
    if payload is None or payload.get("purpose") != PASSWORD_RESET_PURPOSE:
        return None
    if not str(payload.get("sub", "")).isdigit() or not payload.get("fp"):
        return None
    return payload
