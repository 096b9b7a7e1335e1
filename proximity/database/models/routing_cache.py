"""
RoutingCacheEntry SQLAlchemy model.
"""
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Index, String, func
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from proximity.database.connection import Base


class RoutingCacheEntry(Base):
    """
    Resolved travel time for a bucketed route in one TTL window.

    Rows are written once after a successful provider call and are read-only
    afterward; they become logically dead once ``expires_at`` passes.
    """

    __tablename__ = "routing_cache"

    # SHA-256 hex digest of origin|dest|mode|slice
    cache_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    origin_bucket: Mapped[str] = mapped_column(String(64), nullable=False)
    dest_bucket: Mapped[str] = mapped_column(String(64), nullable=False)
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(nullable=False)
    distance_meters: Mapped[int] = mapped_column(nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)

    computed_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False
    )

    __table_args__ = (
        CheckConstraint("duration_seconds > 0", name="routing_cache_positive_duration"),
        CheckConstraint("distance_meters >= 0", name="routing_cache_non_negative_distance"),
        Index("idx_routing_cache_expires", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<RoutingCacheEntry(key='{self.cache_key[:12]}...', mode='{self.mode}', "
            f"duration={self.duration_seconds})>"
        )

    def is_expired(self) -> bool:
        """Check if the cache entry has expired."""
        return datetime.now(timezone.utc) >= self.expires_at
