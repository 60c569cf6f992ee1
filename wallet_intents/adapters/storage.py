from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


def _bump(counter: dict[str, int], key: str | None) -> None:
    if key:
        counter[key] = counter.get(key, 0) + 1


def _top(counter: dict[str, int]) -> tuple[str, int] | None:
    if not counter:
        return None
    # Ties go to the key seen first.
    key = max(counter, key=lambda k: counter[k])
    return key, counter[key]


class UserPreferences(BaseModel):
    recipients: dict[str, int] = Field(default_factory=dict)
    tokens: dict[str, int] = Field(default_factory=dict)
    # Keys are plain decimal strings so they round-trip through JSON exactly.
    amounts: dict[str, int] = Field(default_factory=dict)
    intent_types: dict[str, int] = Field(default_factory=dict)

    def record(
        self,
        *,
        intent_type: str | None = None,
        recipient: str | None = None,
        token: str | None = None,
        amount: str | None = None,
    ) -> None:
        _bump(self.intent_types, intent_type)
        _bump(self.recipients, recipient)
        _bump(self.tokens, token)
        _bump(self.amounts, amount)

    def frequent_recipients(self, limit: int = 2) -> list[str]:
        ranked = sorted(self.recipients.items(), key=lambda item: -item[1])
        return [name for name, _ in ranked[:limit]]

    def top_token(self) -> tuple[str, int] | None:
        return _top(self.tokens)

    def top_amount(self) -> tuple[Decimal, int] | None:
        top = _top(self.amounts)
        return (Decimal(top[0]), top[1]) if top else None

    def merge(self, other: "UserPreferences") -> "UserPreferences":
        merged = self.model_copy(deep=True)
        for name in ("recipients", "tokens", "amounts", "intent_types"):
            target = getattr(merged, name)
            for key, count in getattr(other, name).items():
                target[key] = target.get(key, 0) + count
        return merged


class MevPreferences(BaseModel):
    default_tip: int | None = None
    last_tip: int | None = None
    jito_swaps: int = 0
    total_swaps: int = 0

    @property
    def jito_usage_rate(self) -> float:
        if self.total_swaps <= 0:
            return 0.0
        return self.jito_swaps / self.total_swaps

    def record_swap(self, use_jito: bool) -> None:
        self.total_swaps += 1
        if use_jito:
            self.jito_swaps += 1


class TurnRecord(BaseModel):
    input: str
    resolved_input: str
    kind: str
    summary: str = ""
    ok: bool = True
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StoreSnapshot(BaseModel):
    user: UserPreferences | None = None
    mev: MevPreferences | None = None
    history: list[TurnRecord] = Field(default_factory=list)


class PreferenceStore(Protocol):
    async def save_preferences(self, user: UserPreferences, mev: MevPreferences) -> None: ...

    async def load_preferences(self) -> tuple[UserPreferences, MevPreferences] | None: ...

    async def save_history(self, turns: Sequence[TurnRecord]) -> None: ...

    async def load_history(self) -> list[TurnRecord]: ...


class InMemoryPreferenceStore:
    def __init__(self) -> None:
        self._user: UserPreferences | None = None
        self._mev: MevPreferences | None = None
        self._history: list[TurnRecord] = []

    async def save_preferences(self, user: UserPreferences, mev: MevPreferences) -> None:
        self._user = user.model_copy(deep=True)
        self._mev = mev.model_copy(deep=True)

    async def load_preferences(self) -> tuple[UserPreferences, MevPreferences] | None:
        if self._user is None or self._mev is None:
            return None
        return self._user.model_copy(deep=True), self._mev.model_copy(deep=True)

    async def save_history(self, turns: Sequence[TurnRecord]) -> None:
        self._history = [t.model_copy() for t in turns]

    async def load_history(self) -> list[TurnRecord]:
        return [t.model_copy() for t in self._history]


class JsonFilePreferenceStore:
    """Keeps preferences and turn history in a single JSON document."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> StoreSnapshot:
        if not self.path.exists():
            return StoreSnapshot()
        try:
            return StoreSnapshot.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValidationError, ValueError):
            logger.warning(
                "preference_store_unreadable",
                extra={"event": "preference_store_unreadable", "path": str(self.path)},
            )
            return StoreSnapshot()

    def _write(self, snapshot: StoreSnapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def _update(self, **changes: object) -> None:
        snapshot = self._read()
        for name, value in changes.items():
            setattr(snapshot, name, value)
        self._write(snapshot)

    async def save_preferences(self, user: UserPreferences, mev: MevPreferences) -> None:
        await asyncio.to_thread(self._update, user=user, mev=mev)

    async def load_preferences(self) -> tuple[UserPreferences, MevPreferences] | None:
        snapshot = await asyncio.to_thread(self._read)
        if snapshot.user is None or snapshot.mev is None:
            return None
        return snapshot.user, snapshot.mev

    async def save_history(self, turns: Sequence[TurnRecord]) -> None:
        await asyncio.to_thread(self._update, history=list(turns))

    async def load_history(self) -> list[TurnRecord]:
        snapshot = await asyncio.to_thread(self._read)
        return snapshot.history
