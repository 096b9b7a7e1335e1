"""
UserProfile SQLAlchemy model.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, String, Text, func
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from proximity.database.connection import Base


class UserProfile(Base):
    """
    Profile data the engine reads for viewers and candidates.

    Rows are owned by the surrounding application; this engine only reads
    them (tier, travel mode and privacy flag for viewers, the public subset
    for candidates).
    """

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    availability_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    subscription_tier: Mapped[str] = mapped_column(
        String(20), default="FREE", server_default="FREE", nullable=False
    )
    default_travel_mode: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    privacy_hide_proximity: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false", nullable=False
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserProfile(user_id='{self.user_id}', tier='{self.subscription_tier}')>"

