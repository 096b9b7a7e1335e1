"""
RoutingRateLimit SQLAlchemy model.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Index, String, func
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from proximity.database.connection import Base


class RoutingRateLimit(Base):
    """
    Request counter for one rate-limit window.

    The bucket key embeds the window (e.g. ``etas:<user>:<ip>:<minute>``),
    so a new window starts a new row and ``count`` only grows within a row.
    """

    __tablename__ = "routing_rate_limits"

    bucket_key: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    window_seconds: Mapped[int] = mapped_column(nullable=False)
    window_started_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    count: Mapped[int] = mapped_column(default=0, nullable=False)
    max_requests: Mapped[int] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_routing_rate_limits_updated", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<RoutingRateLimit(bucket_key='{self.bucket_key}', count={self.count}/{self.max_requests})>"
