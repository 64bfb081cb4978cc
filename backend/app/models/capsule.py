"""Time capsules: messages emailed to a recipient on a future date."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base


class ContentType(str, enum.Enum):
    TEXT = "text"
    FILE = "file"
    MIXED = "mixed"


class CapsuleStatus(str, enum.Enum):
    PENDING = "pending"
    # claimed by a delivery run, email not yet confirmed
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    FAILED = "failed"


def _values(e: type[enum.Enum]) -> list[str]:
    return [m.value for m in e]


class Capsule(Base):
    __tablename__ = "capsules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[ContentType] = mapped_column(
        Enum(ContentType, values_callable=_values), default=ContentType.TEXT, nullable=False
    )
    # [{"filename", "original_name", "path", "mimetype"}]
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[CapsuleStatus] = mapped_column(
        Enum(CapsuleStatus, values_callable=_values),
        default=CapsuleStatus.PENDING,
        nullable=False,
    )
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    sender: Mapped["User"] = relationship(back_populates="capsules")  # noqa: F821

    __table_args__ = (
        Index("ix_capsules_delivery_date_status", "delivery_date", "status"),
    )
