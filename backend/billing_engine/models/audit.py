"""AuditRevision model — append-only history of every entity mutation."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Enum, Integer
from sqlalchemy.orm import Mapped, mapped_column

from billing_engine.database import Base, utcnow
from billing_engine.models.enums import AuditOperation, EntityKind


class AuditRevision(Base):
    """One immutable snapshot of an entity at a given revision.

    ``revision`` is a single autoincrement sequence across all entity kinds.
    """

    __tablename__ = "audit_revisions"
    __table_args__ = {"sqlite_autoincrement": True}

    revision: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[EntityKind] = mapped_column(
        Enum(EntityKind, native_enum=False, length=20, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
        index=True,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    operation: Mapped[AuditOperation] = mapped_column(
        Enum(AuditOperation, native_enum=False, length=20), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    snapshot: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AuditRevision(revision={self.revision}, {self.entity_type.value} {self.entity_id}, "
            f"{self.operation.value})>"
        )
