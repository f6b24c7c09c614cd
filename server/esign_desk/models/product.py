from __future__ import annotations

import uuid
from typing import Annotated, Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esign_desk.db.base import Base
from esign_desk.models.mixins import TimestampMixin

Identifier = Annotated[str, mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))]


class Product(TimestampMixin, Base):
    __tablename__ = "products"

    id: Mapped[Identifier]
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_id: Mapped[str | None] = mapped_column(String(120), nullable=True)
    # Either {"initiatorFields": [...], "signerFields": [...]} or a legacy flat list of field configs.
    form_fields: Mapped[dict[str, Any] | list[Any] | None] = mapped_column(JSON, nullable=True)

    contracts: Mapped[list["Contract"]] = relationship(back_populates="product")
