"""Batch code allocation.

Codes look like ``SUM<plant><YYYYMMDD><nnnn>``, sequential per plant and day.
Allocation runs in the caller's transaction and is serialized per prefix by
locking a counter row (``SELECT ... FOR UPDATE``). The counter row is created
with an insert-or-ignore so two first allocations of the day cannot collide,
and ``weight_summary_batch.batch_code`` is unique as a last line of defence.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.db.models import BatchCodeCounterModel, BatchModel
from weighbatch.exceptions import AllocationRaceError

logger = logging.getLogger(__name__)

BATCH_CODE_PREFIX = "SUM"
SUFFIX_WIDTH = 4


def batch_code_prefix(plant_code: str | None, as_of: date) -> str:
    return f"{BATCH_CODE_PREFIX}{plant_code or '0000'}{as_of:%Y%m%d}"


def next_batch_code(prefix: str, last_code: str | None) -> str:
    """Return the code following ``last_code`` within ``prefix``."""
    next_number = 1
    if last_code and last_code.startswith(prefix):
        suffix = last_code[len(prefix):]
        if suffix.isdigit():
            next_number = int(suffix) + 1
    return f"{prefix}{next_number:0{SUFFIX_WIDTH}d}"


class BatchCodeAllocator:
    """Allocates batch codes inside the caller's transaction.

    Does NOT commit; the counter lock is held until the caller's transaction
    ends, which is what serializes concurrent allocations.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def allocate(self, plant_code: str | None, as_of: date) -> str:
        prefix = batch_code_prefix(plant_code, as_of)

        counter = await self._lock_counter(prefix)

        last_code = (
            await self.session.execute(
                select(BatchModel.batch_code)
                .where(BatchModel.batch_code.like(f"{prefix}%"))
                .order_by(BatchModel.batch_code.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        code = next_batch_code(prefix, last_code)
        number = int(code[len(prefix):])

        # Codes from a previously rolled-forward counter are never reissued
        if number <= counter.last_value:
            number = counter.last_value + 1
            code = f"{prefix}{number:0{SUFFIX_WIDTH}d}"

        exists = (
            await self.session.execute(
                select(BatchModel.id).where(BatchModel.batch_code == code)
            )
        ).scalar_one_or_none()
        if exists is not None:
            raise AllocationRaceError(code)

        counter.last_value = number
        await self.session.flush()

        logger.debug(f"Allocated batch code {code}")
        return code

    async def _lock_counter(self, prefix: str) -> BatchCodeCounterModel:
        dialect = self.session.get_bind().dialect.name
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = (
            insert_fn(BatchCodeCounterModel)
            .values(prefix=prefix, last_value=0)
            .on_conflict_do_nothing(index_elements=["prefix"])
        )
        await self.session.execute(stmt)

        return (
            await self.session.execute(
                select(BatchCodeCounterModel)
                .where(BatchCodeCounterModel.prefix == prefix)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
