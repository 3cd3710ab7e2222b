"""
Credit ledger operations.

users.credits is the running balance; credit_ledger is the append-only
history. Each helper updates both inside the caller's session so they commit
together. Balances only change through relative single-row UPDATEs, so two
concurrent requests cannot both spend the same credit.

Usage:
    entry = await credit_ledger.debit_for_job(db, user, job, amount=1)
    await credit_ledger.grant_payment_credits(db, user_id, payment_id=42, amount=10)
    assert await credit_ledger.is_reconciled(db, user_id)
"""
from typing import List, Optional

from sqlalchemy import select, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from photo2video.models.credit_ledger import CreditLedgerEntry, LedgerEntryType
from photo2video.models.generation_job import GenerationJob
from photo2video.models.user import User
from photo2video.utils.logger import logger

REFERENCE_JOB = "job"
REFERENCE_PAYMENT = "payment"


class UserNotFoundError(LookupError):
    pass


class InsufficientCreditsError(Exception):
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits: {available} available, {required} required")


async def insert_ledger_entry(
    db: AsyncSession,
    user_id: int,
    entry_type: LedgerEntryType,
    amount: int,
    balance: int,
    description: str,
    reference_type: Optional[str] = None,
    reference_id: Optional[int] = None,
) -> CreditLedgerEntry:
    """Append a ledger row (flushed, not committed)"""
    entry = CreditLedgerEntry(
        user_id=user_id,
        type=entry_type.value,
        amount=amount,
        balance=balance,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(entry)
    await db.flush()
    return entry


async def update_user_credits(
    db: AsyncSession,
    user_id: int,
    delta: int,
    require_funds: bool = False,
) -> Optional[int]:
    """
    Add delta to users.credits in one UPDATE and return the new balance.

    With require_funds the row only changes when the balance covers the
    debit; None means it did not.
    """
    stmt = update(User).where(User.id == user_id)
    if require_funds:
        stmt = stmt.where(User.credits >= -delta)
    stmt = (
        stmt.values(credits=User.credits + delta)
        .returning(User.credits)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_credits(db: AsyncSession, user_id: int) -> Optional[int]:
    result = await db.execute(select(User.credits).where(User.id == user_id))
    return result.scalar_one_or_none()


def _sync_balance(db: AsyncSession, user_id: int, balance: int) -> None:
    """Mirror the stored balance onto a loaded User without marking it dirty"""
    user = db.sync_session.identity_map.get(db.sync_session.identity_key(User, user_id))
    if user is not None:
        set_committed_value(user, "credits", balance)


async def find_entry(
    db: AsyncSession,
    entry_type: LedgerEntryType,
    reference_type: str,
    reference_id: int,
) -> Optional[CreditLedgerEntry]:
    result = await db.execute(
        select(CreditLedgerEntry)
        .where(
            CreditLedgerEntry.type == entry_type.value,
            CreditLedgerEntry.reference_type == reference_type,
            CreditLedgerEntry.reference_id == reference_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def debit_for_job(
    db: AsyncSession,
    user: User,
    job: GenerationJob,
    amount: int,
) -> CreditLedgerEntry:
    """
    Charge the user for a generation job.

    At most one debit exists per job id; a second call returns the existing
    entry without charging again. Raises InsufficientCreditsError when the
    stored balance no longer covers the amount.
    """
    existing = await find_entry(db, LedgerEntryType.DEBIT, REFERENCE_JOB, job.id)
    if existing is not None:
        return existing

    new_balance = await update_user_credits(db, user.id, -amount, require_funds=True)
    if new_balance is None:
        available = await get_user_credits(db, user.id)
        if available is None:
            raise UserNotFoundError(f"User {user.id} not found")
        raise InsufficientCreditsError(amount, available)
    _sync_balance(db, user.id, new_balance)

    entry = await insert_ledger_entry(
        db,
        user_id=user.id,
        entry_type=LedgerEntryType.DEBIT,
        amount=amount,
        balance=new_balance,
        description="Video generation",
        reference_type=REFERENCE_JOB,
        reference_id=job.id,
    )
    logger.info(
        "credits.debited",
        extra={"user_id": user.id, "job_id": job.id, "amount": amount, "balance": new_balance},
    )
    return entry


async def grant_payment_credits(
    db: AsyncSession,
    user_id: int,
    payment_id: int,
    amount: int,
    description: str = "Payment received",
) -> Optional[CreditLedgerEntry]:
    """
    Apply a completed payment to the user's balance and commit.

    Returns None when this payment was already applied.
    """
    if amount <= 0:
        raise ValueError("Credit amount must be positive")

    if await find_entry(db, LedgerEntryType.CREDIT, REFERENCE_PAYMENT, payment_id) is not None:
        logger.info("credits.payment_already_applied", extra={"user_id": user_id, "reference_id": payment_id})
        return None

    new_balance = await update_user_credits(db, user_id, amount)
    if new_balance is None:
        raise UserNotFoundError(f"User {user_id} not found")
    _sync_balance(db, user_id, new_balance)

    entry = await insert_ledger_entry(
        db,
        user_id=user_id,
        entry_type=LedgerEntryType.CREDIT,
        amount=amount,
        balance=new_balance,
        description=description,
        reference_type=REFERENCE_PAYMENT,
        reference_id=payment_id,
    )
    await db.commit()

    logger.info(
        "credits.granted",
        extra={"user_id": user_id, "reference_id": payment_id, "amount": amount, "balance": new_balance},
    )
    return entry


async def get_ledger(db: AsyncSession, user_id: int) -> List[CreditLedgerEntry]:
    result = await db.execute(
        select(CreditLedgerEntry)
        .where(CreditLedgerEntry.user_id == user_id)
        .order_by(CreditLedgerEntry.id.asc())
    )
    return list(result.scalars().all())


async def count_job_debits(db: AsyncSession, job_id: int) -> int:
    result = await db.execute(
        select(func.count(CreditLedgerEntry.id)).where(
            CreditLedgerEntry.type == LedgerEntryType.DEBIT.value,
            CreditLedgerEntry.reference_type == REFERENCE_JOB,
            CreditLedgerEntry.reference_id == job_id,
        )
    )
    return result.scalar_one()


async def ledger_balance(db: AsyncSession, user_id: int) -> int:
    """Sum of ledger deltas for a user"""
    delta = case(
        (CreditLedgerEntry.type == LedgerEntryType.CREDIT.value, CreditLedgerEntry.amount),
        else_=-CreditLedgerEntry.amount,
    )
    result = await db.execute(
        select(func.coalesce(func.sum(delta), 0)).where(CreditLedgerEntry.user_id == user_id)
    )
    return int(result.scalar_one())


async def is_reconciled(db: AsyncSession, user_id: int) -> bool:
    """True when the stored users.credits matches the ledger history"""
    credits = await get_user_credits(db, user_id)
    if credits is None:
        raise UserNotFoundError(f"User {user_id} not found")
    return credits == await ledger_balance(db, user_id)
