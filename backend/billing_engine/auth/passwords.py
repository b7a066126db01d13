"""Credential hashing for user accounts, bcrypt without passlib."""

import bcrypt


def hash_password(password: str) -> str:
    """Return the bcrypt hash of ``password`` as text for the users table."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Check ``plain_password`` against a stored hash.

    Accounts without a stored hash never authenticate.
    """
    if not hashed_password:
        return False
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
