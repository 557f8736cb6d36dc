"""Tests for weighbatch.db.connection session lifecycle."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from weighbatch.db import connection
from weighbatch.exceptions import StateConflictError


@pytest.fixture
def mock_session():
    session = AsyncMock()
    factory = MagicMock(return_value=session)
    with patch("weighbatch.db.connection.get_session_factory", return_value=factory):
        yield session


@pytest.mark.asyncio
async def test_session_commits_and_closes(mock_session):
    async with connection.get_session() as session:
        assert session is mock_session

    mock_session.commit.assert_awaited_once()
    mock_session.rollback.assert_not_awaited()
    mock_session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_rejected_operation_rolls_back(mock_session):
    with pytest.raises(StateConflictError):
        async with connection.get_session():
            raise StateConflictError("Batch must be processed", current_status="pending")

    mock_session.commit.assert_not_awaited()
    mock_session.rollback.assert_awaited_once()
    mock_session.close.assert_awaited_once()


def test_session_factory_keeps_objects_loaded_after_commit(monkeypatch):
    monkeypatch.setattr(connection, "_engine", None)
    monkeypatch.setattr(connection, "_session_factory", None)

    factory = connection.get_session_factory()

    assert factory.kw["expire_on_commit"] is False
    assert connection.get_engine().dialect.name == "sqlite"
