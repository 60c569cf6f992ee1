from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, ClassVar, Union

from wallet_intents.core.intents import (
    Ambiguous,
    CommandSuggestion,
    NeedsInfo,
    ParseResult,
    Success,
    TransactionIntent,
    Unknown,
    fmt_decimal,
    fmt_lamports,
)
from wallet_intents.core.nlu import ADDRESS, AMOUNT, IntentParser, normalize_input, parse_amount
from wallet_intents.core.schedule import (
    RecurringInterval,
    looks_like_time,
    parse_interval,
    parse_schedule_time,
    parse_time_of_day,
)

logger = logging.getLogger(__name__)

BUNDLE_RE = re.compile(r"^(?:jito\s+bundle|bundle|mev\s+protect)\s*:\s*(?P<body>.*)$", re.IGNORECASE)
BATCH_RE = re.compile(r"^(?:batch|multi)\s*:\s*(?P<body>.*)$", re.IGNORECASE)
CONDITIONAL_RE = re.compile(
    r"^(?:if|when|once)\s+(?P<condition>.+?)(?:\s+then\s+|\s*,\s+(?:then\s+)?)(?P<action>.+)$",
    re.IGNORECASE,
)
RECURRING_RE = re.compile(r"^(?:every|each)\s+(?P<interval>(?:\d+\s*)?[a-z]+)\s+(?P<action>.+)$", re.IGNORECASE)
CANCEL_RE = re.compile(
    r"^(?:cancel|stop|unsubscribe)\s+(?:subscription|watching|monitoring)(?:\s+(?P<id>\S.*))?$",
    re.IGNORECASE,
)
COPY_TRADE_RE = re.compile(
    r"^(?:copy|mirror|follow)\s+(?:trades?\s+)?(?:of\s+)?(?:wallet\s+)?(?P<wallet>\S+?)"
    r"(?:\s+with\s+(?P<multiplier>\d+(?:\.\d+)?)\s*(?P<unit>x|sol|%|percent))?$",
    re.IGNORECASE,
)
SNIPE_RE = re.compile(
    rf"^(?:snipe|front-?run)\s+(?:token\s+)?(?:launch\s+)?(?:of\s+)?(?P<token>.+?)(?:\s+with\s+(?P<amount>{AMOUNT})\s*sol)?$",
    re.IGNORECASE,
)
SEQUENCE_RE = re.compile(r"\s*(?:,?\s*\b(?:and\s+)?then\b|→|->|;)\s*", re.IGNORECASE)
BATCH_SPLIT_RE = re.compile(r"\s*,(?!\d{3}(?!\d))\s*|\s+and\s+", re.IGNORECASE)
SCHEDULE_SPLIT_RE = re.compile(r"\s+(?=(?:at|on|tomorrow|today|tonight|next|in)\b)", re.IGNORECASE)
TIP_RE = re.compile(
    r"\s*(?:\bwith\s+(?:an?\s+)?(?P<a>\d+(?:\.\d+)?)\s*(?P<ak>k)?\s*(?:lamports?\s+)?(?:jito\s+)?tip\b"
    r"|\bwith\s+(?P<b>\d+(?:\.\d+)?)\s*(?P<bk>k)?\s*lamports?\b"
    r"|\b(?:jito\s+)?tip\s+(?:of\s+)?(?P<c>\d+(?:\.\d+)?)\s*(?P<ck>k)?(?:\s*lamports?)?\b"
    r"|\b(?P<d>\d+(?:\.\d+)?)\s*(?P<dk>k)?\s*(?:lamports?\s+)?(?:jito\s+)?tip\b)",
    re.IGNORECASE,
)

OPERATOR_PATTERN = (
    r">=|<=|==|=|>|<|is\s+above|is\s+over|goes\s+above|rises\s+above|is\s+below|is\s+under|goes\s+below|"
    r"drops\s+below|falls\s+below|drops\s+to|falls\s+to|rises\s+to|reaches|hits|above|below"
)
BALANCE_CONDITION_RE = re.compile(
    rf"^(?:my\s+)?(?P<token>\$?[a-z][a-z0-9]*)\s+balance\s*(?P<op>{OPERATOR_PATTERN})\s*(?P<value>{AMOUNT})$",
    re.IGNORECASE,
)
PRICE_CONDITION_RE = re.compile(
    rf"^(?:the\s+)?(?:price\s+of\s+)?(?P<token>\$?[a-z][a-z0-9]*)(?:\s+price)?\s*(?P<op>{OPERATOR_PATTERN})\s*\$?(?P<value>{AMOUNT})$",
    re.IGNORECASE,
)
SLOT_CONDITION_RE = re.compile(r"^(?:the\s+)?slot\s*(?:reaches|hits|is|>=|>)\s*(?P<slot>\d+)$", re.IGNORECASE)
ACCOUNT_CONDITION_RE = re.compile(
    rf"^(?:account\s+)?(?P<address>{ADDRESS})\s+(?:changes|updates|is\s+updated)$",
    re.IGNORECASE,
)
TIME_CONDITION_RE = re.compile(
    r"^(?P<prefix>(?:the\s+)?time\s+is\s+|it(?:'s|\s+is)\s+)?(?P<at>at\s+)?(?P<time>.+)$",
    re.IGNORECASE,
)


class ComparisonOperator(str, Enum):
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    EQUALS = "=="


OPERATOR_WORDS = {
    ">": ComparisonOperator.GREATER_THAN,
    "is above": ComparisonOperator.GREATER_THAN,
    "is over": ComparisonOperator.GREATER_THAN,
    "goes above": ComparisonOperator.GREATER_THAN,
    "rises above": ComparisonOperator.GREATER_THAN,
    "above": ComparisonOperator.GREATER_THAN,
    "<": ComparisonOperator.LESS_THAN,
    "is below": ComparisonOperator.LESS_THAN,
    "is under": ComparisonOperator.LESS_THAN,
    "goes below": ComparisonOperator.LESS_THAN,
    "drops below": ComparisonOperator.LESS_THAN,
    "falls below": ComparisonOperator.LESS_THAN,
    "drops to": ComparisonOperator.LESS_THAN,
    "falls to": ComparisonOperator.LESS_THAN,
    "below": ComparisonOperator.LESS_THAN,
    ">=": ComparisonOperator.GREATER_EQUAL,
    "reaches": ComparisonOperator.GREATER_EQUAL,
    "hits": ComparisonOperator.GREATER_EQUAL,
    "rises to": ComparisonOperator.GREATER_EQUAL,
    "<=": ComparisonOperator.LESS_EQUAL,
    "==": ComparisonOperator.EQUALS,
    "=": ComparisonOperator.EQUALS,
}


def parse_operator(raw: str) -> ComparisonOperator:
    return OPERATOR_WORDS.get(re.sub(r"\s+", " ", raw.strip().lower()), ComparisonOperator.EQUALS)


@dataclass(frozen=True)
class PriceCondition:
    token: str
    operator: ComparisonOperator
    value: Decimal

    def describe(self) -> str:
        return f"{self.token} price {self.operator.value} ${fmt_decimal(self.value)}"


@dataclass(frozen=True)
class BalanceCondition:
    token: str
    operator: ComparisonOperator
    value: Decimal

    def describe(self) -> str:
        return f"{self.token} balance {self.operator.value} {fmt_decimal(self.value)}"


@dataclass(frozen=True)
class TimeCondition:
    value: time

    def describe(self) -> str:
        return f"time is {self.value.strftime('%H:%M')}"


@dataclass(frozen=True)
class SlotCondition:
    slot: int

    def describe(self) -> str:
        return f"slot reaches {self.slot}"


@dataclass(frozen=True)
class AccountChangedCondition:
    address: str

    def describe(self) -> str:
        return f"account {self.address} changes"


Condition = Union[PriceCondition, BalanceCondition, TimeCondition, SlotCondition, AccountChangedCondition]


def parse_condition(text: str) -> Condition | None:
    """Balance is tried before price so `sol balance < 2` is never read as a
    price condition on a token called `balance`."""
    value = text.strip()

    match = BALANCE_CONDITION_RE.match(value)
    if match:
        return BalanceCondition(
            match.group("token").lstrip("$").upper(),
            parse_operator(match.group("op")),
            parse_amount(match.group("value")),
        )

    match = SLOT_CONDITION_RE.match(value)
    if match:
        return SlotCondition(int(match.group("slot")))

    match = PRICE_CONDITION_RE.match(value)
    if match and match.group("token").lower() not in {"time", "it", "slot"}:
        return PriceCondition(
            match.group("token").lstrip("$").upper(),
            parse_operator(match.group("op")),
            parse_amount(match.group("value")),
        )

    match = ACCOUNT_CONDITION_RE.match(value)
    if match:
        return AccountChangedCondition(match.group("address"))

    match = TIME_CONDITION_RE.match(value)
    if match:
        explicit = bool(match.group("prefix") or match.group("at"))
        at = parse_time_of_day(match.group("time"), strict=not explicit)
        if at is not None:
            return TimeCondition(at)
    return None


def extract_tip(text: str) -> tuple[str, int | None]:
    """Strip an inline tip directive. Returns (remaining text, lamports)."""
    match = TIP_RE.search(text)
    if not match:
        return text, None
    raw = match.group("a") or match.group("b") or match.group("c") or match.group("d")
    thousands = match.group("ak") or match.group("bk") or match.group("ck") or match.group("dk")
    lamports = Decimal(raw) * (1000 if thousands else 1)
    remaining = (text[: match.start()] + " " + text[match.end():]).strip()
    return re.sub(r"\s+", " ", remaining), int(lamports)


# Results


@dataclass(frozen=True)
class Empty:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "empty"

    def summary(self) -> str:
        return "Nothing to do."


@dataclass(frozen=True)
class Single:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "single"

    result: Success
    tip: int | None = None

    @property
    def intent(self) -> TransactionIntent:
        return self.result.intent

    def summary(self) -> str:
        text = self.result.summary()
        return f"{text} (tip {fmt_lamports(self.tip)})" if self.tip else text


@dataclass(frozen=True)
class ChainStep:
    order: int
    result: Success
    depends_on: int | None = None

    @property
    def intent(self) -> TransactionIntent:
        return self.result.intent


@dataclass(frozen=True)
class Sequential:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "sequential"

    steps: tuple[ChainStep, ...]

    def first(self) -> ChainStep:
        return self.steps[0]

    def last(self) -> ChainStep:
        return self.steps[-1]

    def summary(self) -> str:
        return " -> ".join(step.result.summary() for step in self.steps)


@dataclass(frozen=True)
class Bundle:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "bundle"

    results: tuple[Success, ...]
    tip: int | None = None

    @property
    def intents(self) -> tuple[TransactionIntent, ...]:
        return tuple(r.intent for r in self.results)

    def summary(self) -> str:
        text = f"JITO bundle of {len(self.results)}: " + "; ".join(r.summary() for r in self.results)
        return f"{text} (tip {fmt_lamports(self.tip)})" if self.tip else text


@dataclass(frozen=True)
class Batch:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "batch"

    results: tuple[Success, ...]

    @property
    def intents(self) -> tuple[TransactionIntent, ...]:
        return tuple(r.intent for r in self.results)

    def summary(self) -> str:
        return f"Batch of {len(self.results)}: " + "; ".join(r.summary() for r in self.results)


@dataclass(frozen=True)
class Conditional:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "conditional"

    condition: Condition
    then_result: Success

    @property
    def intent(self) -> TransactionIntent:
        return self.then_result.intent

    def summary(self) -> str:
        return f"When {self.condition.describe()}: {self.then_result.summary()}"


@dataclass(frozen=True)
class Scheduled:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "scheduled"

    result: Success
    execution_time: datetime
    tip: int | None = None

    @property
    def intent(self) -> TransactionIntent:
        return self.result.intent

    def delay(self, now: datetime) -> timedelta:
        return max(self.execution_time - now, timedelta(0))

    def summary(self) -> str:
        text = f"{self.result.summary()} at {self.execution_time.strftime('%Y-%m-%d %H:%M')}"
        return f"{text} (tip {fmt_lamports(self.tip)})" if self.tip else text


@dataclass(frozen=True)
class Recurring:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "recurring"

    interval: RecurringInterval
    result: Success
    start_time: datetime

    @property
    def intent(self) -> TransactionIntent:
        return self.result.intent

    def summary(self) -> str:
        return f"{self.result.summary()} ({self.interval.name})"


@dataclass(frozen=True)
class CopyTrade:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "copy_trade"

    wallet: str
    multiplier: Decimal = Decimal(1)
    wallet_resolved: str | None = None
    subscription_id: str | None = None

    def summary(self) -> str:
        return f"Copy trades of {self.wallet_resolved or self.wallet} at {fmt_decimal(self.multiplier)}x"


@dataclass(frozen=True)
class Snipe:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "snipe"

    token_identifier: str
    amount: Decimal | None = None
    use_jito: bool = True

    def summary(self) -> str:
        text = f"Snipe {self.token_identifier}"
        return f"{text} with {fmt_decimal(self.amount)} SOL" if self.amount is not None else text


@dataclass(frozen=True)
class CancelSubscription:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "cancel_subscription"

    subscription_id: str | None = None

    def summary(self) -> str:
        return f"Cancel subscription {self.subscription_id}" if self.subscription_id else "Cancel subscriptions"


@dataclass(frozen=True)
class ChainFailure:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "failure"

    step_index: int
    reason: str
    suggestions: tuple[CommandSuggestion, ...] = ()
    detail: ParseResult | None = None

    def summary(self) -> str:
        return self.reason


@dataclass(frozen=True)
class ChainAmbiguous:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "ambiguous"

    step_index: int
    candidates: tuple[TransactionIntent, ...]

    def summary(self) -> str:
        return "Did you mean: " + "; ".join(c.summary() for c in self.candidates) + "?"


@dataclass(frozen=True)
class PartialFailure:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "partial_failure"

    successes: tuple[Success, ...]
    failures: tuple[ChainFailure, ...]

    def summary(self) -> str:
        failed = "; ".join(f"step {f.step_index + 1}: {f.reason}" for f in self.failures)
        return f"{len(self.successes)} ok, {len(self.failures)} failed ({failed})"


@dataclass(frozen=True)
class InvalidCondition:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "invalid_condition"

    text: str

    def summary(self) -> str:
        return f"Could not understand the condition '{self.text}'."


@dataclass(frozen=True)
class InvalidSchedule:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "invalid_schedule"

    text: str

    def summary(self) -> str:
        return f"Could not understand the time '{self.text}'."


@dataclass(frozen=True)
class InvalidRecurrence:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "invalid_recurrence"

    text: str

    def summary(self) -> str:
        return f"Could not understand the interval '{self.text}'."


ChainParseResult = Union[
    Empty,
    Single,
    Sequential,
    Bundle,
    Batch,
    Conditional,
    Scheduled,
    Recurring,
    CopyTrade,
    Snipe,
    CancelSubscription,
    ChainFailure,
    ChainAmbiguous,
    PartialFailure,
    InvalidCondition,
    InvalidSchedule,
    InvalidRecurrence,
]


def failure_reason(result: ParseResult) -> str:
    if isinstance(result, NeedsInfo):
        return result.suggestion or f"Missing {', '.join(result.missing)}"
    if isinstance(result, Unknown):
        return f"Could not understand '{result.input}'"
    if isinstance(result, Ambiguous):
        return result.summary()
    return "unexpected result"


def as_chain_failure(step: int, result: ParseResult) -> ChainFailure:
    suggestions = result.suggestions if isinstance(result, Unknown) else ()
    return ChainFailure(step, failure_reason(result), suggestions, result)


def _step_failure(step: int, result: ParseResult) -> ChainFailure | ChainAmbiguous:
    if isinstance(result, Ambiguous):
        return ChainAmbiguous(step, (result.primary, *result.alternatives))
    return as_chain_failure(step, result)


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ChainParser:
    """Recognises multi-clause idioms and delegates each clause to the intent parser.

    Markers are checked in a fixed order: bundle, batch, conditional,
    recurring, scheduled, cancel-subscription, copy-trade, snipe, implicit
    sequence and finally a single clause.
    """

    def __init__(self, intent_parser: IntentParser, *, clock: Callable[[], datetime] | None = None) -> None:
        self.intent_parser = intent_parser
        self.clock = clock or _local_now

    async def parse(self, text: str) -> ChainParseResult:
        cleaned = normalize_input(text)
        result = await self._dispatch(cleaned)
        logger.debug("chain_parsed", extra={"event": "chain_parsed", "kind": result.kind})
        return result

    async def _dispatch(self, text: str) -> ChainParseResult:
        if not text:
            return Empty()

        match = BUNDLE_RE.match(text)
        if match:
            return await self._bundle(match.group("body"))

        match = BATCH_RE.match(text)
        if match:
            return await self._batch(match.group("body"))

        match = CONDITIONAL_RE.match(text)
        if match:
            return await self._conditional(match.group("condition"), match.group("action"))

        match = RECURRING_RE.match(text)
        if match:
            return await self._recurring(match.group("interval"), match.group("action"))

        scheduled = await self._scheduled(text)
        if scheduled is not None:
            return scheduled

        match = CANCEL_RE.match(text)
        if match:
            raw_id = (match.group("id") or "").strip()
            return CancelSubscription(raw_id or None)

        match = COPY_TRADE_RE.match(text)
        if match:
            return await self._copy_trade(match)

        match = SNIPE_RE.match(text)
        if match:
            raw_amount = match.group("amount")
            return Snipe(match.group("token").strip(), parse_amount(raw_amount) if raw_amount else None)

        if SEQUENCE_RE.search(text):
            segments = _split(SEQUENCE_RE, text)
            if len(segments) > 1:
                return await self._sequential(segments)
            if segments:
                text = segments[0]

        return await self._single(text)

    async def _clause(self, text: str) -> ParseResult:
        return await self.intent_parser.parse(text)

    async def _single(self, text: str) -> ChainParseResult:
        remaining, tip = extract_tip(text)
        result = await self._clause(remaining)
        if isinstance(result, Success):
            return Single(result, tip)
        return _step_failure(0, result)

    async def _collect(self, segments: list[str]) -> tuple[list[Success], list[ChainFailure]]:
        successes: list[Success] = []
        failures: list[ChainFailure] = []
        for index, segment in enumerate(segments):
            result = await self._clause(segment)
            if isinstance(result, Success):
                successes.append(result)
            else:
                failures.append(as_chain_failure(index, result))
        return successes, failures

    async def _bundle(self, body: str) -> ChainParseResult:
        remaining, tip = extract_tip(body)
        segments = _split(SEQUENCE_RE, remaining)
        if not segments:
            return ChainFailure(0, "Bundle has no transactions.")
        successes, failures = await self._collect(segments)
        if failures:
            return PartialFailure(tuple(successes), tuple(failures))
        return Bundle(tuple(successes), tip)

    async def _batch(self, body: str) -> ChainParseResult:
        segments = _split(BATCH_SPLIT_RE, body)
        if not segments:
            return ChainFailure(0, "Batch has no transactions.")
        successes, failures = await self._collect(segments)
        if failures:
            return PartialFailure(tuple(successes), tuple(failures))
        return Batch(tuple(successes))

    async def _sequential(self, segments: list[str]) -> ChainParseResult:
        steps: list[ChainStep] = []
        for order, segment in enumerate(segments):
            result = await self._clause(segment)
            if not isinstance(result, Success):
                return _step_failure(order, result)
            steps.append(ChainStep(order, result, order - 1 if order else None))
        return Sequential(tuple(steps))

    async def _conditional(self, condition_text: str, action: str) -> ChainParseResult:
        condition = parse_condition(condition_text)
        if condition is None:
            return InvalidCondition(condition_text)
        result = await self._clause(action)
        if isinstance(result, Success):
            return Conditional(condition, result)
        return _step_failure(0, result)

    async def _recurring(self, interval_text: str, action: str) -> ChainParseResult:
        interval = parse_interval(interval_text)
        if interval is None:
            return InvalidRecurrence(interval_text)
        result = await self._clause(action)
        if isinstance(result, Success):
            return Recurring(interval, result, self.clock())
        return _step_failure(0, result)

    async def _scheduled(self, text: str) -> ChainParseResult | None:
        now = self.clock()
        invalid: str | None = None
        for split in SCHEDULE_SPLIT_RE.finditer(text):
            action = text[: split.start()].strip()
            tail = text[split.end():]
            if not action or SEQUENCE_RE.search(action):
                continue
            when = parse_schedule_time(tail, now)
            if when is not None and not looks_like_time(action):
                remaining, tip = extract_tip(action)
                result = await self._clause(remaining)
                if isinstance(result, Success):
                    return Scheduled(result, when, tip)
                return _step_failure(0, result)
            # A time left in the action means the phrase was only partly understood.
            if invalid is None and looks_like_time(tail):
                invalid = tail
        if invalid is not None:
            return InvalidSchedule(invalid)
        return None

    async def _copy_trade(self, match: re.Match) -> ChainParseResult:
        wallet = match.group("wallet")
        multiplier = Decimal(1)
        raw = match.group("multiplier")
        if raw:
            multiplier = Decimal(raw)
            if match.group("unit").lower() in {"%", "percent"}:
                multiplier = multiplier / 100
        resolved = await self.intent_parser.resolver.resolve_address(wallet)
        return CopyTrade(wallet, multiplier, resolved)


def _split(pattern: re.Pattern, text: str) -> list[str]:
    return [part.strip() for part in pattern.split(text) if part and part.strip()]
