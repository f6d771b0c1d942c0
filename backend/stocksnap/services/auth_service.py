# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every movement and sale is attributed to a user. Uses bcrypt for
password hashing.

Roles:
- admin: catalog writes, deletes and absolute stock adjustments
- seller: sales and in/out stock movements
"""

import re

import bcrypt

from ..extensions import db
from ..errors import AuthError, ConflictError, ValidationError
from ..models import User
from ..models.auth import ROLES, ROLE_SELLER
from stocksnap.time_utils import utcnow


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("A valid email is required")
    return email.strip().lower()


def create_user(
    email: str,
    password: str,
    display_name: str,
    role: str = ROLE_SELLER,
    *,
    bcrypt_rounds: int = 12,
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for bad input and ConflictError when the email
    is taken.
    """
    email = normalize_email(email)
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if not isinstance(display_name, str) or not display_name.strip():
        raise ValidationError("display_name is required")

    if db.session.query(User).filter_by(email=email).first() is not None:
        raise ConflictError("Email already registered", details={"email": email})

    user = User(
        email=email,
        display_name=display_name.strip(),
        role=role,
        password_hash=hash_password(password, rounds=bcrypt_rounds),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """Return the active user for these credentials or raise AuthError."""
    try:
        email = normalize_email(email)
    except ValidationError:
        raise AuthError("Invalid email or password")

    user = db.session.query(User).filter_by(email=email).first()
    if user is None or not verify_password(password or "", user.password_hash):
        raise AuthError("Invalid email or password")
    if not user.is_active:
        raise AuthError("Account is disabled")

    user.last_login_at = utcnow()
    db.session.commit()
    return user
