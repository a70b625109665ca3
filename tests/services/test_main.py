"""Entry point tests: open_bridge lifecycle."""

import asyncio
import logging

import pytest

from rtdb_bridge.main import open_bridge
from tests.services.fake_database import FakeDatabase, FakeSession


@pytest.mark.asyncio
async def test_open_bridge_closes_engine(settings):
    database = FakeDatabase()
    async with open_bridge(FakeSession(), database, settings) as engine:
        await asyncio.sleep(0)
        assert engine.database is database
        assert engine.connection.subscribed
    assert database.closed
    assert not engine.connection.subscribed
    logging.getLogger("rtdb_bridge").handlers.clear()
