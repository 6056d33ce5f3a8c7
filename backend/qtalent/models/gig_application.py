from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel
from .booking_status import GigApplicationStatus
from .types import CaseInsensitiveEnum


class GigApplication(BaseModel):
    __tablename__ = "gig_applications"
    __table_args__ = (
        UniqueConstraint("gig_id", "talent_id", name="uq_gig_applications_gig_talent"),
    )

    id        = Column(Integer, primary_key=True, index=True)
    gig_id    = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    talent_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status    = Column(
        CaseInsensitiveEnum(GigApplicationStatus, name="gigapplicationstatus"),
        nullable=False,
        default=GigApplicationStatus.INTERESTED,
    )

    gig    = relationship("Booking", back_populates="applications")
    talent = relationship("User")
