import pytest
from sqlalchemy import text

from backend.app.core import database_core
from backend.app.core.database_core import db_ping, dispose_engine, get_engine, get_session_factory, reset_engine


@pytest.mark.asyncio
async def test_session_factory_yields_working_session():
    try:
        async with get_session_factory()() as session:
            assert (await session.execute(text("SELECT 1"))).scalar_one() == 1
    finally:
        await dispose_engine()


@pytest.mark.asyncio
async def test_ping_and_reset_engine():
    try:
        assert await db_ping() is True
        before = get_engine()

        await reset_engine()

        assert get_engine() is not before
        assert await db_ping() is True
    finally:
        await dispose_engine()

    assert database_core._engine is None
