"""Startup validation for weighbatch.

Fails fast when the database is unreachable or the schema is missing, and
warns about configuration that will only bite later (SAP, timezone).
"""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from weighbatch.config import get_config
from weighbatch.db.models import BatchModel, ScaleEventModel

logger = logging.getLogger(__name__)


class StartupValidationError(Exception):
    """Raised when startup validation fails."""
    pass


async def validate_database_connection(session: AsyncSession) -> None:
    """Validate database connection and schema.

    Raises:
        StartupValidationError: If database connection or schema is invalid
    """
    try:
        batch_count = (await session.execute(select(func.count()).select_from(BatchModel))).scalar()
        pending_events = (
            await session.execute(
                select(func.count())
                .select_from(ScaleEventModel)
                .where(ScaleEventModel.is_summarized.is_(False))
            )
        ).scalar()

        logger.info(
            f"✓ Database connection OK ({batch_count} batches, "
            f"{pending_events} unsummarized scale events)"
        )

    except Exception as e:
        raise StartupValidationError(
            f"Database connection failed: {e}. "
            "Check DATABASE_URL and ensure migrations have run."
        ) from e


def validate_reconcile_config() -> None:
    """Validate the batch-code timezone.

    Raises:
        StartupValidationError: If PLANT_TIMEZONE is not a known zone
    """
    config = get_config()
    try:
        ZoneInfo(config.reconcile.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise StartupValidationError(
            f"Unknown PLANT_TIMEZONE '{config.reconcile.timezone}'"
        ) from e
    logger.info(
        f"✓ Reconciliation: timezone {config.reconcile.timezone}, "
        f"default plant {config.reconcile.default_plant_code}"
    )


def validate_sap_config() -> None:
    config = get_config()
    if not config.sap.enabled:
        # Transmission fails until configured; don't fail startup
        logger.warning("⚠ SAP_BASE_URL not set. Batch transmission is disabled.")
    else:
        logger.info(f"✓ SAP endpoint: {config.sap.base_url}{config.sap.endpoint_path}")


async def run_all_validations(session: AsyncSession | None = None) -> None:
    """Run all startup validations.

    Args:
        session: Database session (optional, will warn if not provided)

    Raises:
        StartupValidationError: If any critical validation fails
    """
    logger.info("Running startup validations...")

    validate_reconcile_config()
    validate_sap_config()

    if session is not None:
        await validate_database_connection(session)
    else:
        logger.warning("⚠ Database session not provided, skipping DB validations")

    logger.info("✓ All startup validations passed")
