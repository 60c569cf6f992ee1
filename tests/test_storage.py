from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from wallet_intents.adapters.storage import (
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    MevPreferences,
    TurnRecord,
    UserPreferences,
)


def sample_preferences() -> tuple[UserPreferences, MevPreferences]:
    user = UserPreferences()
    user.record(intent_type="transfer_sol", recipient="bob", amount="1.5")
    user.record(intent_type="transfer_sol", recipient="bob", amount="1.5")
    user.record(intent_type="swap", token="BONK")
    mev = MevPreferences(default_tip=10_000)
    mev.record_swap(True)
    mev.record_swap(False)
    return user, mev


@pytest.mark.asyncio
async def test_json_store_round_trip(tmp_path: Path) -> None:
    store = JsonFilePreferenceStore(tmp_path / "state" / "prefs.json")
    assert await store.load_preferences() is None
    assert await store.load_history() == []

    user, mev = sample_preferences()
    await store.save_preferences(user, mev)
    record = TurnRecord(
        input="send 1 SOL to bob",
        resolved_input="send 1 SOL to bob",
        kind="single",
        summary="Transfer 1 SOL to bob",
        timestamp=datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc),
    )
    await store.save_history([record])

    loaded = await JsonFilePreferenceStore(tmp_path / "state" / "prefs.json").load_preferences()
    assert loaded is not None
    loaded_user, loaded_mev = loaded
    assert loaded_user == user
    assert loaded_mev.default_tip == 10_000
    assert loaded_mev.jito_usage_rate == 0.5
    assert await store.load_history() == [record]


@pytest.mark.asyncio
async def test_corrupt_file_reads_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "prefs.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFilePreferenceStore(path)
    assert await store.load_preferences() is None
    assert await store.load_history() == []

    user, mev = sample_preferences()
    await store.save_preferences(user, mev)
    assert await store.load_preferences() is not None


@pytest.mark.asyncio
async def test_in_memory_store_returns_copies() -> None:
    store = InMemoryPreferenceStore()
    user, mev = sample_preferences()
    await store.save_preferences(user, mev)
    user.record(recipient="carol")

    loaded_user, _ = await store.load_preferences()
    assert "carol" not in loaded_user.recipients


def test_counters() -> None:
    user, mev = sample_preferences()
    assert user.frequent_recipients() == ["bob"]
    assert user.top_amount() == (Decimal("1.5"), 2)
    assert user.top_token() == ("BONK", 1)
    assert user.intent_types == {"transfer_sol": 2, "swap": 1}
    assert mev.jito_usage_rate == 0.5
    assert MevPreferences().jito_usage_rate == 0.0


def test_ties_go_to_first_seen() -> None:
    user = UserPreferences()
    user.record(token="JUP")
    user.record(token="BONK")
    assert user.top_token() == ("JUP", 1)


def test_merge_adds_counts() -> None:
    user, _ = sample_preferences()
    other = UserPreferences(recipients={"bob": 1, "carol": 4})
    merged = user.merge(other)
    assert merged.recipients == {"bob": 3, "carol": 4}
    assert user.recipients == {"bob": 2}
    assert merged.frequent_recipients(1) == ["carol"]
