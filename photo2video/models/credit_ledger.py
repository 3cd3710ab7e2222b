from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from datetime import datetime
from photo2video.database import Base


class LedgerEntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class CreditLedgerEntry(Base):
    """
    Append-only record of a credit balance change.
    Rows are never updated or deleted.
    """
    __tablename__ = "credit_ledger"
    __table_args__ = (
        Index("ix_credit_ledger_reference", "reference_type", "reference_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    type = Column(String(10), nullable=False)  # credit | debit
    amount = Column(Integer, nullable=False)
    balance = Column(Integer, nullable=False)  # Resulting balance after this entry
    description = Column(String(500), nullable=True)

    # What caused the change: ("job", job_id) or ("payment", payment_id)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    @property
    def delta(self) -> int:
        return self.amount if self.type == LedgerEntryType.CREDIT.value else -self.amount
