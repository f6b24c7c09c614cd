from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esign_desk.db.base import Base
from esign_desk.models.mixins import TimestampMixin

Identifier = Annotated[str, mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))]


class ContractStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING_PARTY_B = "PENDING_PARTY_B"
    PENDING_PARTY_A = "PENDING_PARTY_A"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    # Held only while an initiation owns the contract; never logged or exposed as a transition target.
    INITIATING = "INITIATING"


class PartyType(str, Enum):
    PERSONAL = "PERSONAL"
    ENTERPRISE = "ENTERPRISE"


class Contract(TimestampMixin, Base):
    __tablename__ = "contracts"

    id: Mapped[Identifier]
    contract_no: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    status: Mapped[ContractStatus] = mapped_column(
        SAEnum(ContractStatus), default=ContractStatus.DRAFT, nullable=False, index=True
    )
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    flow_id: Mapped[str | None] = mapped_column(String(120), unique=True, nullable=True)
    sign_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    sign_url_expire_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    party_b_name: Mapped[str] = mapped_column(String(120), nullable=False)
    party_b_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    party_b_id_card: Mapped[str | None] = mapped_column(String(32), nullable=True)
    party_b_type: Mapped[PartyType] = mapped_column(SAEnum(PartyType), default=PartyType.PERSONAL, nullable=False)
    party_b_org_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    form_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    product: Mapped["Product"] = relationship(back_populates="contracts")
    status_logs: Mapped[list["ContractStatusLog"]] = relationship(
        back_populates="contract",
        cascade="all,delete-orphan",
        order_by="ContractStatusLog.created_at",
    )
