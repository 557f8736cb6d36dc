"""Batch item routes.

Routes:
- PATCH /api/items/{item_id}         - Edit, split, merge or recreate an item
- GET   /api/items/{item_id}/history - Mutation audit trail of an item
"""

from __future__ import annotations

from fastapi import APIRouter

from weighbatch.db.connection import get_session
from weighbatch.models import MutationResult
from weighbatch.mutation.audit import fetch_item_history
from weighbatch.mutation.service import mutate_item
from weighbatch.web.models import MutateItemRequest

router = APIRouter(prefix="/api/items", tags=["items"])


@router.patch("/{item_id}", response_model=MutationResult)
async def mutate(item_id: int, request: MutateItemRequest):
    """Apply changes to an item of a processed batch.

    Only the fields present in ``changes`` are applied. A ``total_weight``
    below the current total splits the item.
    """
    async with get_session() as session:
        return await mutate_item(session, item_id, request.changes, request.actor)


@router.get("/{item_id}/history")
async def history(item_id: int):
    async with get_session() as session:
        return await fetch_item_history(session, item_id)
