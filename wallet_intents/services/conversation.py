from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Callable

from wallet_intents.adapters.resolver import EntityResolver
from wallet_intents.adapters.storage import MevPreferences, PreferenceStore, TurnRecord, UserPreferences
from wallet_intents.core.chain import (
    Batch,
    Bundle,
    ChainFailure,
    ChainParser,
    ChainParseResult,
    Conditional,
    Recurring,
    Scheduled,
    Sequential,
    Single,
    extract_tip,
)
from wallet_intents.core.intents import (
    Informational,
    Success,
    TransactionIntent,
    fmt_decimal,
    intent_amount,
    intent_recipient,
    intent_token,
    with_amount,
    with_recipient,
    with_slippage,
)
from wallet_intents.core.nlu import ADDRESS, AMOUNT, COMMAND_SUGGESTIONS, normalize_input, parse_amount
from wallet_intents.core.observable import ObservableValue
from wallet_intents.services.preferences import ContextualSuggestion, learn_from_intent, rank_suggestions

logger = logging.getLogger(__name__)

UNDO_RE = re.compile(r"^(?:undo(?:\s+that)?|go\s+back|revert(?:\s+that)?|cancel\s+that|take\s+(?:that|it)\s+back)$")
REDO_RE = re.compile(r"^(?:redo(?:\s+that)?|restore|put\s+it\s+back)$")
REPEAT_RE = re.compile(r"^(?:again|repeat(?:\s+that)?|do\s+it\s+again|same\s+again|one\s+more\s+time)$")
CANCEL_RE = re.compile(r"^(?:cancel|stop|abort|nevermind|never\s+mind|forget\s+it)$")
CONFIRM_RE = re.compile(r"^(?:y|yes|yep|yeah|confirm(?:ed)?|ok(?:ay)?|do\s+it|send\s+it|go\s+ahead|execute)$")
MODIFY_RE = re.compile(r"^(?:make\s+it|change\s+(?:it\s+)?to|set\s+(?:it\s+)?to|update\s+(?:it\s+)?to)\s+(?P<value>.+)$")
HELP_RE = re.compile(r"^(?:help|commands|\?|what\s+can\s+you\s+do\??)$")
DEFAULT_TIP_RE = re.compile(
    r"^(?:set\s+)?(?:my\s+)?default\s+(?:jito\s+)?tip\s+(?:to\s+)?(?P<value>\d+(?:\.\d+)?)\s*(?P<k>k)?(?:\s*lamports?)?$"
)
MEV_TOGGLE_RE = re.compile(r"^(?P<action>enable|disable|turn\s+on|turn\s+off)\s+(?:mev|jito)(?:\s+protection)?$")

MODIFY_AMOUNT_RE = re.compile(rf"^(?P<amount>{AMOUNT})(?:\s*(?:sol|tokens?))?$", re.IGNORECASE)
MODIFY_ADDRESS_RE = re.compile(rf"^(?:to\s+)?(?P<address>{ADDRESS})$", re.IGNORECASE)
MODIFY_SLIPPAGE_RE = re.compile(
    r"^(?:(?P<a>\d+(?:\.\d+)?)\s*%\s*slippage|slippage\s+(?:of\s+)?(?P<b>\d+(?:\.\d+)?)\s*%?)$", re.IGNORECASE
)

DOUBLE_RE = re.compile(r"\b(?:double|twice)\s+(?:that|it|the\s+amount)\b", re.IGNORECASE)
HALF_RE = re.compile(r"\bhalf\s+(?:of\s+)?(?:that|it|the\s+amount)\b", re.IGNORECASE)
SAME_AMOUNT_RE = re.compile(r"\b(?:the\s+)?(?:same|that)\s+amount\b", re.IGNORECASE)
RECIPIENT_REF_RE = re.compile(
    r"\b(?:them|him|her|that\s+(?:wallet|address)|(?:the\s+)?same\s+(?:wallet|address|recipient|person))\b",
    re.IGNORECASE,
)
TOKEN_REF_RE = re.compile(r"\b(?:that|(?:the\s+)?same)\s+token\b", re.IGNORECASE)
IT_TOKEN_RE = re.compile(r"\b(?P<lead>for|into|of|some|more)\s+it\b", re.IGNORECASE)
DEFAULT_TIP_REF_RE = re.compile(r"\b(?:default|usual|normal)\s+(?:jito\s+)?tip\b", re.IGNORECASE)

HELP_TEXT = "\n".join(
    [
        "Commands:",
        *(f"  {s.template} - {s.description}" for s in COMMAND_SUGGESTIONS),
        "Chains:",
        "  bundle: <cmd> then <cmd> [with 50k tip]",
        "  batch: <cmd>, <cmd> and <cmd>",
        "  if sol > 150 then <cmd>",
        "  every day <cmd>",
        "  <cmd> tomorrow at 3pm",
        "Conversation:",
        "  undo, redo, again, cancel, confirm",
        "  make it <amount | address | 50k tip | 1% slippage>",
        "  set default tip 10k, enable/disable mev protection",
        "References:",
        "  double that, half of that, same amount, them, that token, default tip",
    ]
)


def primary_intent(result: ChainParseResult | None) -> TransactionIntent | None:
    """The intent a follow-up command refers to; the last one for multi-step results."""
    if isinstance(result, (Single, Scheduled, Recurring, Conditional)):
        return result.intent
    if isinstance(result, Sequential):
        return result.last().intent
    if isinstance(result, (Bundle, Batch)):
        return result.intents[-1] if result.intents else None
    return None


def result_intents(result: ChainParseResult) -> tuple[TransactionIntent, ...]:
    if isinstance(result, Sequential):
        return tuple(step.intent for step in result.steps)
    if isinstance(result, (Bundle, Batch)):
        return result.intents
    intent = primary_intent(result)
    return (intent,) if intent is not None else ()


def replace_primary_intent(result: ChainParseResult, intent: TransactionIntent) -> ChainParseResult | None:
    if isinstance(result, (Single, Scheduled, Recurring)):
        return replace(result, result=replace(result.result, intent=intent))
    if isinstance(result, Conditional):
        return replace(result, then_result=replace(result.then_result, intent=intent))
    if isinstance(result, Sequential):
        last = result.last()
        return replace(result, steps=(*result.steps[:-1], replace(last, result=replace(last.result, intent=intent))))
    if isinstance(result, (Bundle, Batch)) and result.results:
        last = result.results[-1]
        return replace(result, results=(*result.results[:-1], replace(last, intent=intent)))
    return None


def _result_tip(result: ChainParseResult) -> int | None:
    if isinstance(result, (Single, Bundle, Scheduled)):
        return result.tip
    return None


def _info(message: str) -> Single:
    return Single(Success(Informational(message), 1.0, message))


@dataclass(frozen=True)
class ConversationContext:
    last_intent: TransactionIntent | None = None
    pending: ChainParseResult | None = None
    last_input: str | None = None
    last_recipient: str | None = None
    last_token: str | None = None
    last_amount: Decimal | None = None
    last_error: str | None = None
    confirmed: bool = False
    turn_count: int = 0
    tip: int | None = None
    mev_enabled: bool = True
    default_tip: int | None = None

    @classmethod
    def empty(cls) -> "ConversationContext":
        return cls()

    def with_result(self, result: ChainParseResult, text: str) -> "ConversationContext":
        intent = primary_intent(result)
        recipient = intent_recipient(intent) if intent else None
        token = intent_token(intent) if intent else None
        amount = intent_amount(intent) if intent else None
        return replace(
            self,
            last_intent=intent or self.last_intent,
            pending=result,
            last_input=text,
            last_recipient=recipient or self.last_recipient,
            last_token=token or self.last_token,
            last_amount=amount if amount is not None else self.last_amount,
            last_error=None,
            confirmed=False,
            turn_count=self.turn_count + 1,
            tip=_result_tip(result),
        )

    def with_error(self, message: str) -> "ConversationContext":
        return replace(self, last_error=message, turn_count=self.turn_count + 1)

    def cleared(self) -> "ConversationContext":
        """Empty context that keeps the session's MEV settings."""
        return replace(
            ConversationContext.empty(),
            turn_count=self.turn_count + 1,
            mev_enabled=self.mev_enabled,
            default_tip=self.default_tip,
        )


@dataclass(frozen=True)
class ConversationTurn:
    input: str
    resolved_input: str
    result: ChainParseResult
    timestamp: datetime

    def to_record(self) -> TurnRecord:
        return TurnRecord(
            input=self.input,
            resolved_input=self.resolved_input,
            kind=self.result.kind,
            summary=self.result.summary(),
            ok=self.result.ok,
            timestamp=self.timestamp,
        )


@dataclass(frozen=True)
class EngineState:
    context: ConversationContext
    suggestions: tuple[ContextualSuggestion, ...] = ()


@dataclass(frozen=True)
class TurnResult:
    input: str
    resolved_input: str
    result: ChainParseResult
    context: ConversationContext
    suggestions: tuple[ContextualSuggestion, ...] = ()
    meta: str | None = None
    requires_execution: bool = False

    @property
    def ok(self) -> bool:
        return self.result.ok


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ConversationEngine:
    """Session state machine over the chain parser.

    One turn runs at a time. Context snapshots are immutable; undo and redo
    hold previous snapshots and a new successful turn always clears redo.
    """

    def __init__(
        self,
        chain_parser: ChainParser,
        resolver: EntityResolver,
        *,
        store: PreferenceStore | None = None,
        max_undo: int = 20,
        max_history: int = 100,
        clock: Callable[[], datetime] | None = None,
        context: ConversationContext | None = None,
    ) -> None:
        self.chain_parser = chain_parser
        self.resolver = resolver
        self.store = store
        self.clock = clock or _local_now
        self.user = UserPreferences()
        self.mev = MevPreferences()
        self.previous_session: list[TurnRecord] = []
        self._undo: deque[ConversationContext] = deque(maxlen=max_undo)
        self._redo: deque[ConversationContext] = deque(maxlen=max_undo)
        self._history: deque[ConversationTurn] = deque(maxlen=max_history)
        self._last_success: tuple[str, ChainParseResult] | None = None
        self._lock = asyncio.Lock()
        self._loaded = store is None
        self.state = ObservableValue(EngineState(context or ConversationContext.empty()))

    @property
    def context(self) -> ConversationContext:
        return self.state.value.context

    @property
    def suggestions(self) -> tuple[ContextualSuggestion, ...]:
        return self.state.value.suggestions

    @property
    def history(self) -> list[ConversationTurn]:
        return list(self._history)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    async def load(self) -> None:
        if self.store is None:
            self._loaded = True
            return
        loaded = await self.store.load_preferences()
        if loaded is not None:
            self.user, self.mev = loaded
            if self.mev.default_tip is not None and self.context.default_tip is None:
                self._publish(replace(self.context, default_tip=self.mev.default_tip))
        self.previous_session = await self.store.load_history()
        self._loaded = True
        logger.info(
            "conversation_loaded",
            extra={"event": "conversation_loaded", "previous_turns": len(self.previous_session)},
        )

    async def process(self, text: str) -> TurnResult:
        async with self._lock:
            if not self._loaded:
                await self.load()
            cleaned = normalize_input(text)
            command = cleaned.lower().rstrip(".!")

            meta = await self._meta(command, cleaned)
            if meta is not None:
                return meta

            resolved = self.resolve_references(cleaned)
            result = await self.chain_parser.parse(resolved)
            if not result.ok:
                self._publish(self.context.with_error(result.summary()), self.suggestions)
                logger.info("turn_failed", extra={"event": "turn_failed", "kind": result.kind})
                return self._turn(cleaned, resolved, result)

            await self._commit(cleaned, resolved, result, self.context.with_result(result, cleaned))
            return self._turn(cleaned, resolved, result)

    # References

    def resolve_references(self, text: str) -> str:
        ctx = self.context
        if ctx.last_amount is not None:
            text = DOUBLE_RE.sub(fmt_decimal(ctx.last_amount * 2), text)
            text = HALF_RE.sub(fmt_decimal(ctx.last_amount / 2), text)
            text = SAME_AMOUNT_RE.sub(fmt_decimal(ctx.last_amount), text)
        if ctx.last_recipient:
            text = RECIPIENT_REF_RE.sub(ctx.last_recipient, text)
        if ctx.last_token:
            text = TOKEN_REF_RE.sub(ctx.last_token, text)
            text = IT_TOKEN_RE.sub(lambda m: f"{m.group('lead')} {ctx.last_token}", text)
        default_tip = ctx.default_tip if ctx.default_tip is not None else self.mev.default_tip
        if default_tip is not None:
            text = DEFAULT_TIP_REF_RE.sub(f"{default_tip} lamports tip", text)
        return text

    # Meta commands

    async def _meta(self, command: str, cleaned: str) -> TurnResult | None:
        if UNDO_RE.match(command):
            return self._undo_turn(cleaned)
        if REDO_RE.match(command):
            return self._redo_turn(cleaned)
        if REPEAT_RE.match(command):
            return await self._repeat_turn(cleaned)
        if CANCEL_RE.match(command):
            return self._cancel_turn(cleaned)
        if CONFIRM_RE.match(command):
            return self._confirm_turn(cleaned)
        match = MODIFY_RE.match(command)
        if match:
            # Slice the original text so base58 addresses keep their case.
            value = cleaned[match.start("value"):].strip()
            return await self._modify_turn(cleaned, value)
        if HELP_RE.match(command):
            return self._turn(cleaned, cleaned, _info(HELP_TEXT), meta="help")
        match = DEFAULT_TIP_RE.match(command)
        if match:
            lamports = int(Decimal(match.group("value")) * (1000 if match.group("k") else 1))
            return await self._default_tip_turn(cleaned, lamports)
        match = MEV_TOGGLE_RE.match(command)
        if match:
            enabled = match.group("action") in {"enable", "turn on"}
            return await self._mev_toggle_turn(cleaned, enabled)
        return None

    def _meta_failure(self, cleaned: str, meta: str, reason: str) -> TurnResult:
        return self._turn(cleaned, cleaned, ChainFailure(0, reason), meta=meta)

    def _undo_turn(self, cleaned: str) -> TurnResult:
        if not self._undo:
            return self._meta_failure(cleaned, "undo", "Nothing to undo.")
        current = self.context
        self._redo.append(current)
        restored = self._undo.pop()
        self._publish(restored, self._rank(restored))
        logger.info("turn_undone", extra={"event": "turn_undone", "undo_depth": len(self._undo)})
        undone = current.pending.summary() if current.pending is not None else "last change"
        return self._turn(cleaned, cleaned, _info(f"Undid: {undone}"), meta="undo")

    def _redo_turn(self, cleaned: str) -> TurnResult:
        if not self._redo:
            return self._meta_failure(cleaned, "redo", "Nothing to redo.")
        self._undo.append(self.context)
        restored = self._redo.pop()
        self._publish(restored, self._rank(restored))
        logger.info("turn_redone", extra={"event": "turn_redone", "redo_depth": len(self._redo)})
        redone = restored.pending.summary() if restored.pending is not None else "last change"
        return self._turn(cleaned, cleaned, _info(f"Redid: {redone}"), meta="redo")

    async def _repeat_turn(self, cleaned: str) -> TurnResult:
        if self._last_success is None:
            return self._meta_failure(cleaned, "repeat", "Nothing to repeat.")
        original, result = self._last_success
        await self._commit(cleaned, original, result, self.context.with_result(result, original))
        return self._turn(cleaned, original, result, meta="repeat")

    def _cancel_turn(self, cleaned: str) -> TurnResult:
        self._push_undo()
        self._publish(self.context.cleared())
        return self._turn(cleaned, cleaned, _info("Cancelled."), meta="cancel")

    def _confirm_turn(self, cleaned: str) -> TurnResult:
        pending = self.context.pending
        if pending is None or not pending.ok:
            return self._meta_failure(cleaned, "confirm", "Nothing to confirm.")
        self._publish(replace(self.context, confirmed=True), self.suggestions)
        logger.info("turn_confirmed", extra={"event": "turn_confirmed", "kind": pending.kind})
        return self._turn(cleaned, cleaned, pending, meta="confirm", requires_execution=True)

    async def _modify_turn(self, cleaned: str, value: str) -> TurnResult:
        pending = self.context.pending
        intent = primary_intent(pending)
        if pending is None or not pending.ok:
            return self._meta_failure(cleaned, "modify", "Nothing to modify.")

        updated = await self._apply_modification(pending, intent, value)
        if updated is None:
            return self._meta_failure(cleaned, "modify", f"Could not apply '{value}' to the pending command.")

        await self._commit(cleaned, cleaned, updated, self.context.with_result(updated, cleaned))
        return self._turn(cleaned, cleaned, updated, meta="modify")

    async def _apply_modification(
        self,
        pending: ChainParseResult,
        intent: TransactionIntent | None,
        value: str,
    ) -> ChainParseResult | None:
        """Tries the value as an amount, then an address, then a fee directive."""
        match = MODIFY_AMOUNT_RE.match(value)
        if match and intent is not None:
            try:
                amount = parse_amount(match.group("amount"))
            except ValueError:
                amount = None
            changed = with_amount(intent, amount) if amount is not None else None
            if changed is not None:
                return replace_primary_intent(pending, changed)

        match = MODIFY_ADDRESS_RE.match(value)
        if match and intent is not None:
            raw = match.group("address")
            resolved = await self.resolver.resolve_address(raw)
            changed = with_recipient(intent, raw, resolved) if resolved else None
            if changed is not None:
                return replace_primary_intent(pending, changed)

        remaining, lamports = extract_tip(value)
        if lamports is not None and not remaining and isinstance(pending, (Single, Bundle, Scheduled)):
            return replace(pending, tip=lamports)

        match = MODIFY_SLIPPAGE_RE.match(value)
        if match and intent is not None:
            bps = int(Decimal(match.group("a") or match.group("b")) * 100)
            changed = with_slippage(intent, bps)
            if changed is not None:
                return replace_primary_intent(pending, changed)
        return None

    async def _default_tip_turn(self, cleaned: str, lamports: int) -> TurnResult:
        self.mev.default_tip = lamports
        self._publish(replace(self.context, default_tip=lamports), self.suggestions)
        await self._persist()
        return self._turn(cleaned, cleaned, _info(f"Default JITO tip set to {lamports} lamports."), meta="mev")

    async def _mev_toggle_turn(self, cleaned: str, enabled: bool) -> TurnResult:
        context = replace(self.context, mev_enabled=enabled)
        self._publish(context, self._rank(context))
        state = "enabled" if enabled else "disabled"
        return self._turn(cleaned, cleaned, _info(f"MEV protection {state}."), meta="mev")

    # State transitions

    def _push_undo(self) -> None:
        self._undo.append(self.context)
        self._redo.clear()

    async def _commit(
        self,
        text: str,
        resolved: str,
        result: ChainParseResult,
        context: ConversationContext,
    ) -> None:
        self._push_undo()
        self._history.append(ConversationTurn(text, resolved, result, self.clock()))
        self._last_success = (resolved, result)
        for intent in result_intents(result):
            learn_from_intent(self.user, self.mev, intent)
        tip = _result_tip(result)
        if tip is not None:
            self.mev.last_tip = tip
        self._publish(context, self._rank(context))
        logger.info(
            "turn_committed",
            extra={"event": "turn_committed", "kind": result.kind, "turn": context.turn_count},
        )
        await self._persist()

    async def _persist(self) -> None:
        if self.store is None:
            return
        await self.store.save_preferences(self.user, self.mev)
        # Earlier sessions are kept ahead of this one, within the same history bound.
        records = [*self.previous_session, *(turn.to_record() for turn in self._history)]
        await self.store.save_history(records[-self._history.maxlen:])

    def _rank(self, context: ConversationContext) -> tuple[ContextualSuggestion, ...]:
        return tuple(rank_suggestions(context, self.user, self.mev, self.clock()))

    def _publish(
        self,
        context: ConversationContext,
        suggestions: tuple[ContextualSuggestion, ...] | None = None,
    ) -> None:
        self.state.set(EngineState(context, suggestions if suggestions is not None else ()))

    def _turn(
        self,
        text: str,
        resolved: str,
        result: ChainParseResult,
        *,
        meta: str | None = None,
        requires_execution: bool = False,
    ) -> TurnResult:
        return TurnResult(
            input=text,
            resolved_input=resolved,
            result=result,
            context=self.context,
            suggestions=self.suggestions,
            meta=meta,
            requires_execution=requires_execution,
        )
