import random
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.core.errors_core import DrawPersistenceConflict
from backend.app.core.utils_core import utc_now
from backend.app.crud.cycles_crud import CyclesCRUD
from backend.app.models import Cycle, CycleEntry, CyclePrize
from backend.app.scheduler import cleanup_data, draw_cycles, send_notifications
from backend.app.services.draw_service import DrawEngine, WinnerDraft


async def seed_cycle(
    factory,
    *,
    name="Spring draw",
    status="active",
    draw_in=timedelta(hours=-1),
    users=("alice", "bob", "carol"),
    prizes=((1, "Gold", "100", 1), (2, "Silver", "50", 1)),
    completed_ago=None,
):
    now = utc_now()
    async with factory() as session:
        async with session.begin():
            cycle = Cycle(
                name=name,
                description="",
                type="draw",
                status=status,
                start_date=now - timedelta(days=7),
                end_date=now - timedelta(hours=2),
                draw_date=None if draw_in is None else now + draw_in,
                entry_fee=Decimal("1.00"),
                max_entries=100,
                created_at=now - timedelta(days=60),
                updated_at=now - timedelta(days=60),
                completed_at=None if completed_ago is None else now - completed_ago,
            )
            cycle.entries = [CycleEntry(user_ref=u, entry_date=now - timedelta(days=1)) for u in users]
            cycle.prizes = [
                CyclePrize(position=pos, name=prize_name, value=Decimal(value), quantity=qty)
                for pos, prize_name, value, qty in prizes
            ]
            session.add(cycle)
            await session.flush()
            return cycle.id


async def load_cycle(factory, cycle_id):
    async with factory() as session:
        return await CyclesCRUD(session).get_cycle(cycle_id)


def engine_for(factory, seed=1):
    return DrawEngine(factory, rng=random.Random(seed))


@pytest.mark.asyncio
async def test_eligible_cycle_is_drawn_and_completed(session_factory):
    cycle_id = await seed_cycle(session_factory)

    report = await engine_for(session_factory).run_draws()

    assert report.eligible == 1
    assert report.drawn == 1
    assert report.winners == 2
    assert report.drawn_cycle_ids == [cycle_id]

    cycle = await load_cycle(session_factory, cycle_id)
    assert cycle.status == "completed"
    assert cycle.completed_at is not None
    assert [w.prize_name for w in cycle.winners] == ["Gold", "Silver"]
    assert [w.draw_order for w in cycle.winners] == [1, 2]
    assert len({w.user_ref for w in cycle.winners}) == 2
    assert {w.user_ref for w in cycle.winners} <= {"alice", "bob", "carol"}


@pytest.mark.asyncio
async def test_second_run_does_not_draw_again(session_factory):
    cycle_id = await seed_cycle(session_factory)
    engine = engine_for(session_factory)

    await engine.run_draws()
    first = [(w.user_ref, w.prize_name) for w in (await load_cycle(session_factory, cycle_id)).winners]

    report = await engine_for(session_factory, seed=999).run_draws()

    assert report.eligible == 0
    assert report.drawn == 0
    second = [(w.user_ref, w.prize_name) for w in (await load_cycle(session_factory, cycle_id)).winners]
    assert second == first


@pytest.mark.asyncio
async def test_only_due_active_cycles_are_eligible(session_factory):
    await seed_cycle(session_factory, name="future", draw_in=timedelta(hours=3))
    await seed_cycle(session_factory, name="draft", status="draft")
    await seed_cycle(session_factory, name="no date", draw_in=None)
    due_id = await seed_cycle(session_factory, name="due")

    report = await engine_for(session_factory).run_draws()

    assert report.eligible == 1
    assert report.drawn_cycle_ids == [due_id]


@pytest.mark.asyncio
async def test_cycle_without_entries_is_left_active(session_factory):
    cycle_id = await seed_cycle(session_factory, users=())

    report = await engine_for(session_factory).run_draws()

    assert report.eligible == 1
    assert report.skipped_empty == 1
    assert report.drawn == 0
    cycle = await load_cycle(session_factory, cycle_id)
    assert cycle.status == "active"
    assert cycle.winners == []


@pytest.mark.asyncio
async def test_cycle_without_prizes_completes_with_no_winners(session_factory):
    cycle_id = await seed_cycle(session_factory, prizes=())

    report = await engine_for(session_factory).run_draws()

    assert report.drawn == 1
    assert report.winners == 0
    cycle = await load_cycle(session_factory, cycle_id)
    assert cycle.status == "completed"
    assert cycle.winners == []


@pytest.mark.asyncio
async def test_more_prize_units_than_entrants(session_factory):
    cycle_id = await seed_cycle(
        session_factory,
        users=("alice", "alice", "bob"),
        prizes=((1, "Gold", "100", 2), (2, "Silver", "50", 4)),
    )

    await engine_for(session_factory, seed=4).run_draws()

    cycle = await load_cycle(session_factory, cycle_id)
    assert sorted(w.user_ref for w in cycle.winners) == ["alice", "bob"]
    assert [w.prize_name for w in cycle.winners] == ["Gold", "Gold"]


@pytest.mark.asyncio
async def test_conditional_write_refuses_second_save(session_factory):
    cycle_id = await seed_cycle(session_factory)
    now = utc_now()
    draft = [WinnerDraft("alice", 1, "Gold", Decimal("100.00"), 1)]

    async with session_factory() as session:
        async with session.begin():
            assert await CyclesCRUD(session).complete_draw(cycle_id, draft, now) is True

    other = [WinnerDraft("bob", 1, "Gold", Decimal("100.00"), 1)]
    async with session_factory() as session:
        async with session.begin():
            assert await CyclesCRUD(session).complete_draw(cycle_id, other, now) is False

    cycle = await load_cycle(session_factory, cycle_id)
    assert [w.user_ref for w in cycle.winners] == ["alice"]


@pytest.mark.asyncio
async def test_stale_snapshot_loses_the_race(session_factory):
    cycle_id = await seed_cycle(session_factory)

    async with session_factory() as session:
        stale = await CyclesCRUD(session).find_eligible_cycles(utc_now())
    assert [c.id for c in stale] == [cycle_id]

    await engine_for(session_factory, seed=1).run_draws()
    winners_before = [w.user_ref for w in (await load_cycle(session_factory, cycle_id)).winners]

    with pytest.raises(DrawPersistenceConflict):
        await engine_for(session_factory, seed=2).draw_cycle(stale[0])

    winners_after = [w.user_ref for w in (await load_cycle(session_factory, cycle_id)).winners]
    assert winners_after == winners_before


@pytest.mark.asyncio
async def test_conflict_is_counted_not_failed(session_factory, monkeypatch):
    cycle_id = await seed_cycle(session_factory)

    async with session_factory() as session:
        stale = await CyclesCRUD(session).find_eligible_cycles(utc_now())
    await engine_for(session_factory).run_draws()

    async def stale_find(self, now):
        return stale

    monkeypatch.setattr(CyclesCRUD, "find_eligible_cycles", stale_find)
    report = await engine_for(session_factory, seed=3).run_draws()

    assert report.eligible == 1
    assert report.conflicts == 1
    assert report.failures == 0
    assert report.drawn == 0
    assert (await load_cycle(session_factory, cycle_id)).status == "completed"


@pytest.mark.asyncio
async def test_storage_failure_is_isolated_to_one_cycle(session_factory, monkeypatch):
    broken_id = await seed_cycle(session_factory, name="broken", draw_in=timedelta(hours=-2))
    healthy_id = await seed_cycle(session_factory, name="healthy")

    original = CyclesCRUD.complete_draw

    async def flaky_complete_draw(self, cycle_id, winners, completed_at):
        if cycle_id == broken_id:
            raise OperationalError("UPDATE cycles", {}, Exception("disk I/O error"))
        return await original(self, cycle_id, winners, completed_at)

    monkeypatch.setattr(CyclesCRUD, "complete_draw", flaky_complete_draw)
    report = await engine_for(session_factory).run_draws()

    assert report.eligible == 2
    assert report.failures == 1
    assert report.drawn_cycle_ids == [healthy_id]

    broken = await load_cycle(session_factory, broken_id)
    assert broken.status == "active"
    assert broken.winners == []
    assert (await load_cycle(session_factory, healthy_id)).status == "completed"


@pytest.mark.asyncio
async def test_draw_job_callback_runs_engine(session_factory):
    cycle_id = await seed_cycle(session_factory)

    report = await draw_cycles.run_once(session_factory)

    assert report.drawn_cycle_ids == [cycle_id]


@pytest.mark.asyncio
async def test_notifications_job_counts_upcoming_draws(session_factory, caplog):
    await seed_cycle(session_factory, name="soon", draw_in=timedelta(hours=2))
    await seed_cycle(session_factory, name="later", draw_in=timedelta(hours=48))
    await seed_cycle(session_factory, name="overdue", draw_in=timedelta(hours=-2))

    with caplog.at_level("INFO"):
        upcoming = await send_notifications.run_once(session_factory)

    assert upcoming == 1
    assert any("Reminder" in r.getMessage() and "soon" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_cleanup_job_counts_old_finished_cycles(session_factory):
    await seed_cycle(session_factory, name="old", status="completed", completed_ago=timedelta(days=40))
    await seed_cycle(session_factory, name="recent", status="completed", completed_ago=timedelta(days=5))
    await seed_cycle(session_factory, name="old cancelled", status="cancelled")
    await seed_cycle(session_factory, name="active", draw_in=timedelta(hours=5))

    stale = await cleanup_data.run_once(session_factory)

    # "old cancelled" falls back to updated_at (60 days ago)
    assert stale == 2


@pytest.mark.asyncio
async def test_gold_and_silver_scenario(session_factory):
    cycle_id = await seed_cycle(
        session_factory,
        users=("A", "B", "C", "D", "E"),
        prizes=((1, "Gold", "100", 1), (2, "Silver", "50", 2)),
    )

    await engine_for(session_factory, seed=12).run_draws()
    cycle = await load_cycle(session_factory, cycle_id)

    assert cycle.status == "completed"
    assert len(cycle.winners) == 3
    assert len({w.user_ref for w in cycle.winners}) == 3
    assert {w.user_ref for w in cycle.winners} <= {"A", "B", "C", "D", "E"}
    assert [w.prize_name for w in cycle.winners] == ["Gold", "Silver", "Silver"]

    report = await engine_for(session_factory, seed=13).run_draws()
    again = await load_cycle(session_factory, cycle_id)

    assert report.failures == 0
    assert [w.user_ref for w in again.winners] == [w.user_ref for w in cycle.winners]
