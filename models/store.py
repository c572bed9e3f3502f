"""Store model - founding record of a versioned store."""

from datetime import datetime
from typing import List
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import String, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base


class Store(Base):
    """Store ORM model.

    Holds only the attributes the store was founded with. The values in
    effect now live on the version flagged ``is_current``.
    """

    __tablename__ = "stores"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    creator_login: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    opening_time: Mapped[str] = mapped_column(String(32), nullable=False)
    closing_time: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Versions are removed explicitly by the storage layer, never by the ORM
    versions: Mapped[List["StoreVersion"]] = relationship(
        "StoreVersion",
        back_populates="store",
        passive_deletes="all",
    )

    __table_args__ = (
        {"comment": "Stores; current display values come from store_versions"},
    )


# Pydantic schemas
class StoreCreate(BaseModel):
    """Schema for the ``data`` payload of a create_store command."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    owner_name: str = Field(alias="ownerName", min_length=1)
    opening_time: str = Field(alias="openingTime", min_length=1)
    closing_time: str = Field(alias="closingTime", min_length=1)


class StoreResponse(BaseModel):
    """Schema for store response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    address: str
    creator_login: str
    owner_name: str
    opening_time: str
    closing_time: str
    created_at: datetime
