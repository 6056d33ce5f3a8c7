# backend/qtalent/models/talent_profile.py

from sqlalchemy import (
    Column,
    String,
    Numeric,
    ForeignKey,
    Integer,
    Boolean,
    DateTime,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class TalentProfile(BaseModel):
    """ORM model representing a talent's public profile and billing tier."""

    __tablename__ = "talent_profiles"

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        unique=True,
        nullable=False,
        index=True,
    )
    artist_name = Column(String, index=True, nullable=True)
    hourly_rate = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=True)

    # Pro tier lowers the platform commission on invoices issued while it is
    # active. Flipped only by subscription webhooks.
    is_pro_subscriber = Column(Boolean, nullable=False, default=False)
    subscription_status = Column(String, nullable=False, default="free")  # active|free
    subscription_started_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="talent_profile")
