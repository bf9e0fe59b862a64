# conciliacao/core/hashing.py
from passlib.context import CryptContext

# --- Password Hashing Context ---
# This module is solely responsible for password hashing/verification.
# It should not import anything that could lead to circular dependencies.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifies a plain password against a hashed password using the configured passlib context.
    A malformed hash counts as a failed verification.
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    """Hashes a plain password."""
    return pwd_context.hash(password)
