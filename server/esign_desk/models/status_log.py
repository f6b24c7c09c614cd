from __future__ import annotations

import uuid
from typing import Annotated

from sqlalchemy import Enum as SAEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esign_desk.db.base import Base
from esign_desk.models.contract import ContractStatus
from esign_desk.models.mixins import CreatedAtMixin

Identifier = Annotated[str, mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))]


class ContractStatusLog(CreatedAtMixin, Base):
    """Append-only audit row, one per contract status transition."""

    __tablename__ = "contract_status_logs"

    id: Mapped[Identifier]
    contract_id: Mapped[str] = mapped_column(ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status: Mapped[ContractStatus | None] = mapped_column(SAEnum(ContractStatus), nullable=True)
    to_status: Mapped[ContractStatus] = mapped_column(SAEnum(ContractStatus), nullable=False)
    operator_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)

    contract: Mapped["Contract"] = relationship(back_populates="status_logs")
