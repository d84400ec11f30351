"""
Exchange rate model for currency conversion.
"""
from sqlalchemy import Column, String, Date, Numeric, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel


class ExchangeRate(BaseModel):
    """Cached daily rate from a currency to the trip's base currency."""
    __tablename__ = "exchange_rates"
    
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    rate_to_base = Column(Numeric(18, 8), nullable=False)  # 1 currency = rate_to_base base_currency
    source = Column(String(20), nullable=False, default="api")  # "api" or "manual"
    
    # Relationships
    trip = relationship("Trip", back_populates="exchange_rates")
    
    __table_args__ = (
        UniqueConstraint("trip_id", "date", "currency", name="uq_trip_date_currency"),
    )
