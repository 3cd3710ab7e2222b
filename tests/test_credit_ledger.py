"""
Credit ledger: exactly-once job debits, idempotent payment credits and
balance reconciliation.
"""

import pytest

from photo2video.models import LedgerEntryType, User
from photo2video.services import credit_ledger


@pytest.mark.asyncio
async def test_payment_credit_is_idempotent(db, make_user):
    user = await make_user(credits=0)

    first = await credit_ledger.grant_payment_credits(db, user.id, payment_id=77, amount=10)
    second = await credit_ledger.grant_payment_credits(db, user.id, payment_id=77, amount=10)

    assert first is not None
    assert first.balance == 10
    assert second is None
    refreshed = await db.get(User, user.id)
    assert refreshed.credits == 10
    assert await credit_ledger.is_reconciled(db, user.id)


@pytest.mark.asyncio
async def test_payment_credit_rejects_non_positive(db, make_user):
    user = await make_user(credits=0)
    with pytest.raises(ValueError):
        await credit_ledger.grant_payment_credits(db, user.id, payment_id=1, amount=0)


@pytest.mark.asyncio
async def test_payment_credit_unknown_user(db):
    with pytest.raises(credit_ledger.UserNotFoundError):
        await credit_ledger.grant_payment_credits(db, 999, payment_id=1, amount=5)


@pytest.mark.asyncio
async def test_job_debit_happens_once(db, make_user, make_video, make_job):
    user = await make_user(credits=3)
    video = await make_video(user.id)
    job = await make_job(video)
    user = await db.get(User, user.id)

    entry = await credit_ledger.debit_for_job(db, user, job, amount=1)
    again = await credit_ledger.debit_for_job(db, user, job, amount=1)
    await db.commit()

    assert again.id == entry.id
    assert entry.type == LedgerEntryType.DEBIT.value
    assert entry.balance == 2
    assert await credit_ledger.count_job_debits(db, job.id) == 1
    assert (await db.get(User, user.id)).credits == 2
    assert await credit_ledger.is_reconciled(db, user.id)


@pytest.mark.asyncio
async def test_ledger_history_and_balance(db, make_user, make_video, make_job):
    user = await make_user(credits=5)
    video = await make_video(user.id)
    job = await make_job(video)
    user = await db.get(User, user.id)

    await credit_ledger.debit_for_job(db, user, job, amount=2)
    await db.commit()
    await credit_ledger.grant_payment_credits(db, user.id, payment_id=501, amount=4)

    entries = await credit_ledger.get_ledger(db, user.id)
    assert [e.delta for e in entries] == [5, -2, 4]
    assert [e.balance for e in entries] == [5, 3, 7]
    assert await credit_ledger.ledger_balance(db, user.id) == 7
    assert await credit_ledger.is_reconciled(db, user.id)


@pytest.mark.asyncio
async def test_debit_checks_stored_balance(db, session_factory, make_user, make_video, make_job):
    user = await make_user(credits=1)
    video = await make_video(user.id)
    first_job = await make_job(video)
    second_job = await make_job(video)
    stale_user = await db.get(User, user.id)
    assert stale_user.credits == 1

    async with session_factory() as other:
        await credit_ledger.debit_for_job(other, await other.get(User, user.id), first_job, amount=1)
        await other.commit()

    with pytest.raises(credit_ledger.InsufficientCreditsError) as exc_info:
        await credit_ledger.debit_for_job(db, stale_user, second_job, amount=1)
    await db.rollback()

    assert exc_info.value.required == 1
    assert exc_info.value.available == 0
    assert await credit_ledger.count_job_debits(db, second_job.id) == 0
    assert await credit_ledger.get_user_credits(db, user.id) == 0
    assert await credit_ledger.is_reconciled(db, user.id)
