# backend/qtalent/models/user.py

from sqlalchemy import Boolean, Column, Integer, String, Enum
from sqlalchemy.orm import relationship
from .base import BaseModel
import enum


class UserType(str, enum.Enum):
    """Enumeration of all supported user roles."""

    BOOKER = "booker"
    TALENT = "talent"


class User(BaseModel):
    """Local mirror of an identity-provider account.

    Credentials live with the identity provider; this row only carries what
    the booking and payment flows need to address a party.
    """

    __tablename__ = "users"

    id         = Column(Integer, primary_key=True, index=True)
    email      = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=False, default="")
    last_name  = Column(String, nullable=False, default="")
    user_type  = Column(Enum(UserType), nullable=False)
    is_active  = Column(Boolean, default=True)

    # A talent has exactly one profile:
    talent_profile = relationship(
        "TalentProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email
