"""
User model for authentication and user management.
"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from app.db.base import BaseModel


class User(BaseModel):
    """User model with immutable username."""
    __tablename__ = "users"
    
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    memberships = relationship("TripMember", back_populates="user", cascade="all, delete-orphan")
    spends_paid = relationship("Spend", foreign_keys="Spend.paid_by_id", back_populates="paid_by")
    assignments = relationship("SpendAssignment", back_populates="user")
    
    @property
    def name(self) -> str:
        """Name shown in balances and settlement plans."""
        return self.display_name or self.username
