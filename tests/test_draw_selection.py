import dataclasses
import random
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal

import pytest

from backend.app.services.draw_service import WinnerDraft, select_winners


@dataclass
class Entry:
    user_ref: str


@dataclass
class Prize:
    position: int
    name: str
    value: object = "10"
    quantity: int = 1


def entries(*users):
    return [Entry(u) for u in users]


def test_winner_count_is_bounded_by_distinct_entrants():
    pool = entries("alice", "alice", "bob", "carol")
    prizes = [Prize(1, "Gold", quantity=2), Prize(2, "Silver", quantity=3)]

    winners = select_winners(pool, prizes, random.Random(7))

    assert len(winners) == 3
    assert {w.user_ref for w in winners} == {"alice", "bob", "carol"}


def test_winner_count_is_bounded_by_prize_units():
    pool = entries(*[f"user{i}" for i in range(10)])
    prizes = [Prize(1, "Gold"), Prize(2, "Silver", quantity=2)]

    winners = select_winners(pool, prizes, random.Random(1))

    assert len(winners) == 3


def test_no_user_wins_twice_across_seeds():
    pool = entries("a", "a", "a", "b", "b", "c", "d")
    prizes = [Prize(1, "Gold", quantity=2), Prize(2, "Silver", quantity=2), Prize(3, "Bronze", quantity=5)]

    for seed in range(50):
        winners = select_winners(pool, prizes, random.Random(seed))
        users = [w.user_ref for w in winners]
        assert len(users) == len(set(users)) == 4


def test_prizes_are_awarded_in_position_order():
    pool = entries("a", "b", "c", "d")
    prizes = [Prize(3, "Bronze"), Prize(1, "Gold"), Prize(2, "Silver")]

    winners = select_winners(pool, prizes, random.Random(3))

    assert [w.prize_position for w in winners] == [1, 2, 3]
    assert [w.prize_name for w in winners] == ["Gold", "Silver", "Bronze"]
    assert [w.draw_order for w in winners] == [1, 2, 3]


def test_equal_positions_keep_declaration_order():
    pool = entries("a", "b", "c")
    prizes = [Prize(1, "First declared"), Prize(1, "Second declared")]

    winners = select_winners(pool, prizes, random.Random(11))

    assert [w.prize_name for w in winners] == ["First declared", "Second declared"]


def test_lower_positions_are_served_first_when_entrants_run_out():
    pool = entries("a", "b")
    prizes = [Prize(2, "Silver", quantity=2), Prize(1, "Gold", quantity=1)]

    winners = select_winners(pool, prizes, random.Random(5))

    assert [w.prize_name for w in winners] == ["Gold", "Silver"]


def test_same_seed_gives_same_result():
    pool = entries(*"abcdefgh")
    prizes = [Prize(1, "Gold"), Prize(2, "Silver", quantity=3)]

    first = select_winners(pool, prizes, random.Random(42))
    second = select_winners(pool, prizes, random.Random(42))

    assert first == second


def test_empty_pool_and_zero_quantity():
    assert select_winners([], [Prize(1, "Gold")], random.Random(0)) == []
    assert select_winners(entries("a"), [Prize(1, "Gold", quantity=0)], random.Random(0)) == []
    assert select_winners(entries("a"), [], random.Random(0)) == []


def test_prize_value_is_normalised_to_money():
    winners = select_winners(entries("a"), [Prize(1, "Gold", value="12.345")], random.Random(0))

    assert winners[0].prize_value == Decimal("12.35")
    assert winners[0].to_dict() == {
        "user": "a",
        "prize": {"position": 1, "name": "Gold", "value": "12.35"},
    }


def test_each_entry_has_equal_chance():
    rng = random.Random(2024)
    pool = entries("a", "b", "c")
    counts = Counter(
        select_winners(pool, [Prize(1, "Gold")], rng)[0].user_ref for _ in range(3000)
    )

    for user in ("a", "b", "c"):
        assert 850 <= counts[user] <= 1150


def test_more_entries_give_proportionally_better_odds():
    rng = random.Random(99)
    pool = entries("heavy", "heavy", "light")
    counts = Counter(
        select_winners(pool, [Prize(1, "Gold")], rng)[0].user_ref for _ in range(3000)
    )

    assert 1850 <= counts["heavy"] <= 2150


def test_winner_draft_is_immutable():
    draft = WinnerDraft("a", 1, "Gold", Decimal("1.00"), 1)

    with pytest.raises(dataclasses.FrozenInstanceError):
        draft.user_ref = "b"  # type: ignore[misc]


def test_position_one_is_allocated_before_position_two_with_two_entries():
    winners = select_winners(
        entries("a", "b"), [Prize(2, "Second"), Prize(1, "First")], random.Random(0)
    )

    assert [(w.draw_order, w.prize_position) for w in winners] == [(1, 1), (2, 2)]
