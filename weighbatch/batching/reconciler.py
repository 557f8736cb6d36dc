"""Scale event reconciliation into weight summary batches.

Periodic (arq cron) and on-demand (API/CLI) runs share this code path.

Run outline:
1. Fetch unsummarized scale events in id order
2. Group them by the eleven-field grouping key
3. Per group: resolve the production-order-detail, skip details that
   already have a ``processed`` batch, convert weights by measurement rule,
   reuse or create the detail's ``pending`` batch, fold totals into a
   matching item or stage a new one
4. Insert staged items, bump totals, flag events summarized, commit
5. Recompute detail rollups (best effort, re-runnable)

Groups whose order or detail cannot be resolved are skipped and retried on
the next run. Any other failure rolls back the whole run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.batching.allocator import BatchCodeAllocator
from weighbatch.batching.grouping import DIMENSION_FIELDS, GroupingKey, group_events
from weighbatch.batching.rollup import recompute_rollups
from weighbatch.config import AppConfig, get_config
from weighbatch.db.models import (
    BatchItemModel,
    BatchModel,
    ProductionOrderDetailModel,
    ReconcileRunModel,
    ScaleEventModel,
)
from weighbatch.exceptions import NotFoundError
from weighbatch.models import (
    ItemStatus,
    MeasurementRuleKind,
    ReconcileResult,
    ReconcileRunStatus,
    TransmissionStatus,
)
from weighbatch.reference.lookup import ProductionOrderRef, ReferenceLookup, SqlReferenceLookup

logger = logging.getLogger(__name__)

# pg_advisory_xact_lock key shared by every reconciliation run
RECONCILE_LOCK_KEY = 0x57534231

_SUMMARIZE_CHUNK = 500
_ZERO = Decimal("0")

# Serializes runs within one process; the advisory lock covers other processes
_run_lock = asyncio.Lock()


def _match(column, value):
    return column.is_(None) if value is None else column == value


class ReconciliationEngine:
    """Folds unsummarized scale events into pending batches."""

    def __init__(
        self,
        session: AsyncSession,
        lookup: ReferenceLookup | None = None,
        *,
        default_plant_code: str = "0000",
        as_of: date | None = None,
        trigger: str = "manual",
    ):
        self.session = session
        self.lookup = lookup or SqlReferenceLookup(session)
        self.allocator = BatchCodeAllocator(session)
        self.default_plant_code = default_plant_code
        self.as_of = as_of
        self.trigger = trigger

        # Per-run state
        self._batches: dict[tuple[Any, ...], BatchModel] = {}
        self._staged: dict[tuple[Any, ...], BatchItemModel] = {}
        self._created_batch_ids: set[int] = set()
        self._reused_batch_ids: set[int] = set()

    async def run(self, production_order_number: str | None = None) -> ReconcileResult:
        """Execute one reconciliation run.

        Args:
            production_order_number: Restrict the run to one order (on-demand)

        Returns:
            ReconcileResult with batch/item/event counts

        Raises:
            Exception: Anything raised in the transactional phase, after the
                transaction is rolled back and the failure is logged
        """
        started = time.monotonic()
        async with _run_lock:
            try:
                result = await self._run_transactional(production_order_number)
            except Exception as exc:
                await self.session.rollback()
                logger.exception(f"Reconciliation run failed: {exc}")
                await self._record_run(
                    ReconcileResult(status=ReconcileRunStatus.FAILED),
                    production_order_number,
                    message=str(exc),
                    duration=time.monotonic() - started,
                )
                raise

            if result.status == ReconcileRunStatus.NOOP:
                return result

            # Post-commit bookkeeping: authoritative rollup recomputation
            await recompute_rollups(self.session, result.affected_detail_ids)

            result.run_id = await self._record_run(
                result,
                production_order_number,
                message=(
                    f"{result.events_processed} events into "
                    f"{result.batches_touched} batches"
                ),
                duration=time.monotonic() - started,
            )

        logger.info(
            f"Reconciliation finished: created={result.batches_created} "
            f"reused={result.batches_reused} items_created={result.items_created} "
            f"items_updated={result.items_updated} events={result.events_processed} "
            f"skipped_groups={result.groups_skipped}"
        )
        return result

    async def _run_transactional(self, production_order_number: str | None) -> ReconcileResult:
        await self._acquire_run_lock()

        events = await self._fetch_pending_events(production_order_number)
        if not events:
            await self.session.commit()
            logger.debug("No unsummarized scale events")
            return ReconcileResult(status=ReconcileRunStatus.NOOP)

        logger.info(f"Reconciling {len(events)} unsummarized scale events")

        result = ReconcileResult()
        converted_by_detail: dict[int, Decimal] = defaultdict(lambda: _ZERO)
        processed_ids: list[int] = []

        for key, group in group_events(events).items():
            try:
                ref = await self.lookup.find_production_order_detail(
                    key.production_order_number, key.material_code
                )
            except NotFoundError as exc:
                logger.info(f"Skipping group {key}: {exc.message}")
                result.groups_skipped += 1
                continue

            if await self._has_processed_batch(ref.detail_id):
                logger.info(
                    f"Skipping group {key}: detail {ref.detail_id} has a processed batch"
                )
                result.groups_skipped += 1
                continue

            plant_code = ref.plant_code or key.plant_code or self.default_plant_code
            raw_total, converted_total = await self._convert_weights(group, key.material_code)

            batch = await self._resolve_batch(ref, key, plant_code, group)

            item_key = key.with_plant(key.plant_code or plant_code)
            item = await self._find_item(batch, item_key)
            if item is not None:
                # Descriptive fields of an existing item stay as they are
                item.total_weight = (item.total_weight or _ZERO) + raw_total
                item.total_weight_converted = (
                    item.total_weight_converted or _ZERO
                ) + converted_total
                if item.id is not None:
                    result.items_updated += 1
            else:
                self._stage_item(batch, item_key, group[0], raw_total, converted_total)

            converted_by_detail[ref.detail_id] += converted_total
            processed_ids.extend(event.id for event in group)

        staged = list(self._staged.values())
        if staged:
            self.session.add_all(staged)
            result.items_created = len(staged)

        for detail_id, converted in converted_by_detail.items():
            detail = await self.session.get(ProductionOrderDetailModel, detail_id)
            if detail is not None:
                detail.total_weighed = (detail.total_weighed or _ZERO) + converted

        unique_ids = sorted(set(processed_ids))
        await self._mark_summarized(unique_ids)

        await self.session.commit()

        result.batches_created = len(self._created_batch_ids)
        result.batches_reused = len(self._reused_batch_ids)
        result.events_processed = len(unique_ids)
        result.affected_detail_ids = sorted(converted_by_detail)
        return result

    async def _acquire_run_lock(self) -> None:
        if self.session.get_bind().dialect.name == "postgresql":
            await self.session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": RECONCILE_LOCK_KEY}
            )

    async def _fetch_pending_events(
        self, production_order_number: str | None
    ) -> list[ScaleEventModel]:
        stmt = (
            select(ScaleEventModel)
            .where(ScaleEventModel.is_summarized.is_(False))
            .order_by(ScaleEventModel.id.asc())
        )
        if production_order_number:
            stmt = stmt.where(
                ScaleEventModel.production_order_number == production_order_number
            )
        return list((await self.session.execute(stmt)).scalars())

    async def _has_processed_batch(self, detail_id: int) -> bool:
        found = (
            await self.session.execute(
                select(BatchModel.id)
                .where(
                    BatchModel.production_order_detail_id == detail_id,
                    BatchModel.transmission_status == TransmissionStatus.PROCESSED.value,
                    BatchModel.deleted_at.is_(None),
                )
                .limit(1)
            )
        ).scalar_one_or_none()
        return found is not None

    async def _convert_weights(
        self, group: list[ScaleEventModel], material_code: str | None
    ) -> tuple[Decimal, Decimal]:
        """Set converted weight and applied rule on each event.

        ``standard`` materials count a fixed value per weighing regardless of
        what the scale read, so the converted total is count x fixed value.
        """
        rule = await self.lookup.find_measurement_rule(material_code)
        kind = rule.kind if rule else None
        if kind == MeasurementRuleKind.STANDARD and rule.fixed_value is None:
            logger.warning(
                f"Material {material_code} is standard-measured without a fixed value; "
                "falling back to scale weights"
            )
            kind = None

        raw_total = _ZERO
        converted_total = _ZERO
        for event in group:
            raw = event.weight or _ZERO
            if kind == MeasurementRuleKind.ACTUAL:
                converted = raw
            elif kind == MeasurementRuleKind.STANDARD:
                converted = rule.fixed_value
            else:
                converted = event.weight_converted if event.weight_converted is not None else raw

            event.weight_converted = converted
            event.material_measurement_type = kind.value if kind else None

            raw_total += raw
            converted_total += converted

        return raw_total, converted_total

    async def _resolve_batch(
        self,
        ref: ProductionOrderRef,
        key: GroupingKey,
        plant_code: str,
        group: list[ScaleEventModel],
    ) -> BatchModel:
        cache_key = (key.material_code, key.production_order_number, ref.detail_id)
        event_ids = [event.id for event in group]
        id_from, id_to = min(event_ids), max(event_ids)

        batch = self._batches.get(cache_key)
        if batch is None:
            batch = (
                await self.session.execute(
                    select(BatchModel)
                    .where(
                        BatchModel.production_order_detail_id == ref.detail_id,
                        BatchModel.transmission_status == TransmissionStatus.PENDING.value,
                        BatchModel.deleted_at.is_(None),
                    )
                    .order_by(BatchModel.id.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()

            if batch is not None:
                self._reused_batch_ids.add(batch.id)
                logger.debug(f"Reusing pending batch {batch.batch_code}")
            else:
                batch_code = await self.allocator.allocate(plant_code, self._as_of())
                batch = BatchModel(
                    batch_code=batch_code,
                    production_order_detail_id=ref.detail_id,
                    scale_event_id_from=id_from,
                    scale_event_id_to=id_to,
                    transmission_status=TransmissionStatus.PENDING.value,
                    created_by=None,  # system run
                )
                self.session.add(batch)
                await self.session.flush()
                self._created_batch_ids.add(batch.id)
                logger.info(f"Created batch {batch_code} for detail {ref.detail_id}")

            self._batches[cache_key] = batch

        if batch.scale_event_id_to is None or id_to > batch.scale_event_id_to:
            batch.scale_event_id_to = id_to
        if batch.scale_event_id_from is None:
            batch.scale_event_id_from = id_from

        return batch

    async def _find_item(self, batch: BatchModel, item_key: GroupingKey) -> BatchItemModel | None:
        item_fields = item_key.item_fields()
        staged = self._staged.get((batch.id, tuple(item_fields.values())))
        if staged is not None:
            return staged

        stmt = select(BatchItemModel).where(
            BatchItemModel.batch_id == batch.id,
            BatchItemModel.deleted_at.is_(None),
        )
        for name, value in item_fields.items():
            stmt = stmt.where(_match(getattr(BatchItemModel, name), value))
        stmt = stmt.order_by(BatchItemModel.id.asc()).limit(1)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    def _stage_item(
        self,
        batch: BatchModel,
        item_key: GroupingKey,
        first_event: ScaleEventModel,
        raw_total: Decimal,
        converted_total: Decimal,
    ) -> BatchItemModel:
        item = BatchItemModel(
            batch_id=batch.id,
            production_order_number=item_key.production_order_number or "",
            plant_code=item_key.plant_code or "",
            material_code=item_key.material_code or "",
            material_uom=first_event.material_uom,
            packing_date=first_event.created_at,
            total_weight=raw_total,
            total_weight_converted=converted_total,
            status=ItemStatus.PENDING.value,
            created_by=None,
            **{name: getattr(item_key, name) for name in DIMENSION_FIELDS},
        )
        self._staged[(batch.id, tuple(item_key.item_fields().values()))] = item
        return item

    async def _mark_summarized(self, event_ids: list[int]) -> None:
        for start in range(0, len(event_ids), _SUMMARIZE_CHUNK):
            chunk = event_ids[start:start + _SUMMARIZE_CHUNK]
            await self.session.execute(
                update(ScaleEventModel)
                .where(ScaleEventModel.id.in_(chunk))
                .values(is_summarized=True)
            )
        if event_ids:
            logger.info(f"Flagged {len(event_ids)} scale events as summarized")

    async def _record_run(
        self,
        result: ReconcileResult,
        production_order_number: str | None,
        message: str | None = None,
        duration: float | None = None,
    ) -> int | None:
        try:
            run = ReconcileRunModel(
                trigger=self.trigger,
                production_order_number=production_order_number,
                status=result.status.value,
                batches_created=result.batches_created,
                batches_reused=result.batches_reused,
                items_created=result.items_created,
                items_updated=result.items_updated,
                events_processed=result.events_processed,
                groups_skipped=result.groups_skipped,
                message=message,
                duration_seconds=duration,
            )
            self.session.add(run)
            await self.session.commit()
            return run.id
        except Exception:
            await self.session.rollback()
            logger.exception("Failed to record reconciliation run")
            return None

    def _as_of(self) -> date:
        return self.as_of or datetime.now(ZoneInfo(get_config().reconcile.timezone)).date()


async def reconcile(
    session: AsyncSession,
    lookup: ReferenceLookup | None = None,
    *,
    production_order_number: str | None = None,
    trigger: str = "manual",
    as_of: date | None = None,
    config: AppConfig | None = None,
) -> ReconcileResult:
    """Run reconciliation with application defaults.

    Used by the arq cron job, the API and the CLI alike.
    """
    config = config or get_config()
    engine = ReconciliationEngine(
        session,
        lookup,
        default_plant_code=config.reconcile.default_plant_code,
        as_of=as_of or datetime.now(ZoneInfo(config.reconcile.timezone)).date(),
        trigger=trigger,
    )
    return await engine.run(production_order_number)
