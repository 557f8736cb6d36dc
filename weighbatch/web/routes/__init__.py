"""weighbatch web route modules.

Each module exports a ``router`` (APIRouter) included by weighbatch.web.app.
"""

from weighbatch.web.routes import batches, health, items, reconcile

__all__ = ["batches", "health", "items", "reconcile"]
