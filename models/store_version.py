"""StoreVersion model - append-only version log for stores."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
import sqlalchemy as sa
from sqlalchemy import String, ForeignKey, DateTime, Integer, Boolean, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base


class StoreVersion(Base):
    """StoreVersion ORM model - one immutable snapshot of a store's attributes."""

    __tablename__ = "store_versions"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    store_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("stores.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    creator_login: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    opening_time: Mapped[str] = mapped_column(String(32), nullable=False)
    closing_time: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    is_current: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    store: Mapped["Store"] = relationship("Store", back_populates="versions")

    __table_args__ = (
        sa.CheckConstraint("version_number >= 1", name="ck_store_versions_version_number"),
        sa.UniqueConstraint(
            "store_id",
            "version_number",
            name="uq_store_versions_store_version_number",
        ),
        # At most one current version per store
        Index(
            "ux_store_versions_store_current",
            "store_id",
            unique=True,
            postgresql_where=sa.text("is_current"),
            sqlite_where=sa.text("is_current = 1"),
        ),
        Index("ix_store_versions_store_created", "store_id", "created_at"),
        {"comment": "Version history for stores, exactly one is_current row per store"},
    )


# Pydantic schemas
class StoreVersionCreate(BaseModel):
    """Schema for the ``data`` payload of a create_store_version command."""

    model_config = ConfigDict(populate_by_name=True)

    owner_name: str = Field(alias="storeOwnerName", min_length=1)
    opening_time: str = Field(alias="openingTime", min_length=1)
    closing_time: str = Field(alias="closingTime", min_length=1)


class StoreVersionResponse(BaseModel):
    """Schema for store version response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    store_id: UUID
    version_number: int
    creator_login: str
    owner_name: str
    opening_time: str
    closing_time: str
    created_at: datetime
    is_current: bool
