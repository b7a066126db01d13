"""User accounts: registration, login, profile updates and guarded deletion."""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.auth.passwords import hash_password, verify_password
from billing_engine.errors import DependencyInUse, NotFound, ValidationError
from billing_engine.models.enums import LIVE_STATUSES, UserRole
from billing_engine.models.subscription import Subscription
from billing_engine.models.user import User
from billing_engine.services.audit_service import record_creation, record_deletion, record_update, snapshot

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("email", "name", "role", "is_active", "country")
_CLEARABLE_FIELDS = frozenset({"country"})


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def _email_taken(db: AsyncSession, email: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = select(User.id).where(User.email == email)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    result = await db.execute(query)
    return result.first() is not None


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    name: str,
    role: UserRole = UserRole.USER,
    country: str | None = None,
) -> User:
    """Register a user. Emails are unique regardless of case."""
    email = normalize_email(email)
    if not password:
        raise ValidationError("Password is required")
    if await _email_taken(db, email):
        raise ValidationError(f"Email already registered: {email}")

    user = User(
        email=email,
        hashed_password=hash_password(password),
        name=name.strip(),
        role=role,
        is_active=True,
        country=country,
    )
    await record_creation(db, user)
    logger.info("Registered user %s (%s)", user.id, email)
    return user


async def authenticate(db: AsyncSession, email: str, password: str) -> User | None:
    """Return the active user matching the credentials, or ``None``."""
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        logger.warning("Login attempt for inactive user %s", user.id)
        return None
    return user


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("Usuario", user_id)
    return user


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.asc()))
    return list(result.scalars().all())


async def update_user(db: AsyncSession, user_id: uuid.UUID, changes: dict) -> User:
    """Apply a partial update. A ``password`` key is re-hashed.

    An explicit ``None`` clears the country; the other fields cannot be emptied.
    """
    user = await get_user(db, user_id)
    for field in _UPDATABLE_FIELDS:
        if field in changes and changes[field] is None and field not in _CLEARABLE_FIELDS:
            raise ValidationError(f"Field {field} cannot be cleared")
    before = snapshot(user)

    if "email" in changes:
        changes["email"] = normalize_email(changes["email"])
        if changes["email"] != user.email and await _email_taken(db, changes["email"], exclude_id=user.id):
            raise ValidationError(f"Email already registered: {changes['email']}")

    for field in _UPDATABLE_FIELDS:
        if field in changes:
            setattr(user, field, changes[field])

    # A password change alone does not show up in the snapshot.
    password = changes.get("password")
    if password:
        user.hashed_password = hash_password(password)
        await db.flush()

    await record_update(db, user, before)
    return user


async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> bool:
    """Delete or deactivate a user.

    Returns ``True`` when the row was physically removed and ``False`` when
    historic subscriptions forced a soft delete.
    """
    user = await get_user(db, user_id)

    live = await db.execute(
        select(func.count())
        .select_from(Subscription)
        .where(Subscription.user_id == user.id, Subscription.status.in_(LIVE_STATUSES))
    )
    if live.scalar_one() > 0:
        raise DependencyInUse(f"Usuario {user.id} has a live subscription")

    historic = await db.execute(
        select(func.count()).select_from(Subscription).where(Subscription.user_id == user.id)
    )
    if historic.scalar_one() > 0:
        before = snapshot(user)
        user.is_active = False
        await record_update(db, user, before)
        logger.info("Deactivated user %s (historic subscriptions)", user.id)
        return False

    await record_deletion(db, user)
    logger.info("Deleted user %s", user_id)
    return True
