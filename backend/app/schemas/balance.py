"""
Pydantic schemas for balance summaries and settlement plans.
"""
from pydantic import BaseModel, PlainSerializer
from typing import Annotated, List, Optional
from datetime import date, datetime
from decimal import Decimal

# Decimals stay exact in Python and serialize to JSON numbers
Money = Annotated[Decimal, PlainSerializer(lambda v: float(v), return_type=float, when_used="json")]


class PersonBalance(BaseModel):
    """Per-user totals in the trip's base currency."""
    user_id: int
    user_name: str = ""
    total_paid: Money
    total_owed: Money
    net_balance: Money  # Positive = is owed money, negative = owes money


class SettlementTransfer(BaseModel):
    """One transfer of the minimal settlement plan."""
    id: str  # Synthesized, stable within one response
    from_user_id: int
    from_user_name: str = ""
    to_user_id: int
    to_user_name: str = ""
    amount: Money  # Positive, trip's base currency
    oldest_debt_date: Optional[date] = None  # Best-effort: None when the edge only exists after netting


class BalanceSummary(BaseModel):
    """Result of a balance calculation. Computed on demand, never persisted."""
    trip_id: int
    base_currency: str
    calculated_at: datetime
    total_spent: Money
    balances: List[PersonBalance] = []
    settlements: List[SettlementTransfer] = []
    skipped_records: int = 0  # Spends/assignments ignored for data-integrity reasons


class UserBalance(BaseModel):
    """How much one user owes and is owed across a trip."""
    trip_id: int
    user_id: int
    base_currency: str
    owes: Money
    is_owed: Money
    net_balance: Money


class LedgerEntry(BaseModel):
    """A single non-netted debt: one assignee's share of one spend."""
    spend_id: int
    date: date
    description: Optional[str] = None
    from_user_id: int
    from_user_name: str = ""
    to_user_id: int
    to_user_name: str = ""
    amount: Money


class DebtLedger(BaseModel):
    """Audit view listing every contributing debt without greedy matching."""
    trip_id: int
    base_currency: str
    entries: List[LedgerEntry] = []
