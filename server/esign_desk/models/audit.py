from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from esign_desk.db.base import Base
from esign_desk.models.mixins import CreatedAtMixin

Identifier = Annotated[str, mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))]


class AuditAction(str, Enum):
    ESIGN_CALLBACK = "ESIGN_CALLBACK"
    CRON_SYNC_STATUS = "CRON_SYNC_STATUS"


class AuditLog(CreatedAtMixin, Base):
    __tablename__ = "audit_logs"

    id: Mapped[Identifier]
    action: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(80), nullable=False, default="Contract")
    resource_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
