"""
Presence SQLAlchemy models.

Two physical projections of a user's location:

- ``user_presence_private``: precise coordinates, read only by server-side code
- ``user_presence_public``: bucketed coordinates used by nearby queries

When the user hides proximity, both rows store NULL coordinates.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Float, Index, String, func
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from proximity.database.connection import Base


class PrivatePresence(Base):
    """Precise last-known location of a user."""

    __tablename__ = "user_presence_private"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    precise_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    precise_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy_m: Mapped[Optional[int]] = mapped_column(nullable=True)
    privacy_hide_proximity: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<PrivatePresence(user_id='{self.user_id}', hidden={self.privacy_hide_proximity})>"


class PublicPresence(Base):
    """Bucketed location of a user, visible to ranking queries."""

    __tablename__ = "user_presence_public"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    bucketed_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    bucketed_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    accuracy_m: Mapped[Optional[int]] = mapped_column(nullable=True)
    is_online: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    privacy_hide_proximity: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_presence_public_lat_lng", "bucketed_lat", "bucketed_lng"),
        Index("idx_presence_public_updated", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PublicPresence(user_id='{self.user_id}', "
            f"bucket=({self.bucketed_lat}, {self.bucketed_lng}))>"
        )
