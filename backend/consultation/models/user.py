"""
User Model - Requesters

Requester accounts are owned by the identity/onboarding side of the platform.
This core only reads the profile snapshot and mutates `credit_balance` when a
consultation is settled.
"""
from sqlalchemy import Column, String, DateTime, Boolean, JSON, Integer
import uuid

from .database import Base, utcnow


class User(Base):
    """Requester account (the paying side of a consultation)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), unique=True, nullable=True, index=True)
    full_name = Column(String(255), nullable=True)

    # Free-form profile, including birth details used for the consultation context
    profile = Column(JSON, default=dict)

    # Available consultation credits; never negative
    credit_balance = Column(Integer, nullable=False, default=0)

    profile_image = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        profile = self.profile or {}
        return profile.get("name") or self.full_name or self.email or self.id

    def astrology_snapshot(self) -> dict:
        """Frozen copy of the birth/astrology details shown to the partner."""
        profile = self.profile or {}
        return {
            "name": profile.get("name") or self.full_name or self.email,
            "date_of_birth": profile.get("date_of_birth"),
            "time_of_birth": profile.get("time_of_birth"),
            "place_of_birth": profile.get("place_of_birth"),
            "zodiac_sign": profile.get("zodiac_sign"),
            "moon_sign": profile.get("moon_sign"),
            "ascendant": profile.get("ascendant"),
            "additional_info": profile.get("astrology_details"),
        }

    def to_public_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.display_name,
            "profile_image": self.profile_image,
        }

    def __repr__(self):
        return f"<User {self.email or self.id[:8]}>"
