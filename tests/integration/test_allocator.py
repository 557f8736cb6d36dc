"""Integration tests for batch code allocation against a real session."""

from datetime import date

import pytest

from weighbatch.batching.allocator import BatchCodeAllocator
from weighbatch.db.models import BatchCodeCounterModel

AS_OF = date(2026, 10, 18)


@pytest.mark.asyncio
async def test_first_code_of_the_day(db_session):
    code = await BatchCodeAllocator(db_session).allocate("1000", AS_OF)
    assert code == "SUM1000202610180001"


@pytest.mark.asyncio
async def test_sequential_allocations_in_one_transaction(db_session):
    allocator = BatchCodeAllocator(db_session)

    codes = [await allocator.allocate("1000", AS_OF) for _ in range(3)]

    assert codes == [
        "SUM1000202610180001",
        "SUM1000202610180002",
        "SUM1000202610180003",
    ]
    counter = await db_session.get(BatchCodeCounterModel, "SUM100020261018")
    assert counter.last_value == 3


@pytest.mark.asyncio
async def test_continues_after_existing_batches(db_session, seed):
    details = await seed.production_order()
    await seed.batch(details["MAT-A"], status="pending", batch_code="SUM1000202610180005")

    code = await BatchCodeAllocator(db_session).allocate("1000", AS_OF)

    assert code == "SUM1000202610180006"


@pytest.mark.asyncio
async def test_prefixes_are_independent(db_session):
    allocator = BatchCodeAllocator(db_session)

    await allocator.allocate("1000", AS_OF)
    other_plant = await allocator.allocate("2000", AS_OF)
    next_day = await allocator.allocate("1000", date(2026, 10, 19))
    no_plant = await allocator.allocate(None, AS_OF)

    assert other_plant == "SUM2000202610180001"
    assert next_day == "SUM1000202610190001"
    assert no_plant == "SUM0000202610180001"


@pytest.mark.asyncio
async def test_counter_is_never_reissued(db_session):
    db_session.add(BatchCodeCounterModel(prefix="SUM100020261018", last_value=41))
    await db_session.commit()

    code = await BatchCodeAllocator(db_session).allocate("1000", AS_OF)

    assert code == "SUM1000202610180042"
