from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, FIXED_NOW, PUMP_MINT
from wallet_intents.core.chain import (
    AccountChangedCondition,
    BalanceCondition,
    Batch,
    Bundle,
    CancelSubscription,
    ChainFailure,
    ChainParser,
    ComparisonOperator,
    Conditional,
    CopyTrade,
    Empty,
    InvalidCondition,
    InvalidRecurrence,
    InvalidSchedule,
    PartialFailure,
    PriceCondition,
    Recurring,
    Scheduled,
    Sequential,
    Single,
    SlotCondition,
    Snipe,
    TimeCondition,
    extract_tip,
    parse_condition,
)
from wallet_intents.core.intents import IntentType, NeedsInfo, Unknown
from wallet_intents.core.schedule import DAILY


@pytest.mark.asyncio
async def test_sequential_steps_are_ordered(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to a then send 2 SOL to b")
    assert isinstance(result, Sequential)
    assert [step.order for step in result.steps] == [0, 1]
    assert result.steps[0].depends_on is None
    assert result.steps[1].depends_on == 0
    assert result.first().intent.recipient_resolved == ALICE
    assert result.last().intent.recipient_resolved == CAROL


@pytest.mark.parametrize(
    "text",
    [
        "send 1 SOL to a; send 2 SOL to b; stake 3 SOL",
        "send 1 SOL to a -> send 2 SOL to b -> stake 3 SOL",
        "send 1 SOL to a, then send 2 SOL to b and then stake 3 SOL",
    ],
)
@pytest.mark.asyncio
async def test_sequential_connectives(chain: ChainParser, text: str) -> None:
    result = await chain.parse(text)
    assert isinstance(result, Sequential)
    assert [step.order for step in result.steps] == [0, 1, 2]
    assert [step.depends_on for step in result.steps] == [None, 0, 1]


@pytest.mark.asyncio
async def test_sequential_failure_names_the_step(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to a then fly to the moon")
    assert isinstance(result, ChainFailure)
    assert result.step_index == 1
    assert isinstance(result.detail, Unknown)
    assert result.suggestions


@pytest.mark.asyncio
async def test_bundle_with_tip(chain: ChainParser) -> None:
    result = await chain.parse("bundle: swap 1 SOL for BONK then send 2 SOL to bob with 10k tip")
    assert isinstance(result, Bundle)
    assert result.tip == 10_000
    assert [i.type for i in result.intents] == [IntentType.SWAP, IntentType.TRANSFER_SOL]


@pytest.mark.asyncio
async def test_bundle_partial_failure_keeps_both_sides(chain: ChainParser) -> None:
    result = await chain.parse("bundle: send 1 SOL to bob then swap 1 BADTOKEN for SOL")
    assert isinstance(result, PartialFailure)
    assert len(result.successes) == 1
    assert len(result.failures) == 1
    assert result.successes[0].intent.recipient_resolved == BOB
    assert result.failures[0].step_index == 1
    assert isinstance(result.failures[0].detail, NeedsInfo)


@pytest.mark.asyncio
async def test_jito_bundle_marker(chain: ChainParser) -> None:
    result = await chain.parse("jito bundle: send 1 SOL to bob; send 1 SOL to a")
    assert isinstance(result, Bundle)
    assert result.tip is None
    assert len(result.results) == 2


@pytest.mark.asyncio
async def test_batch_splits_on_commas_and_and(chain: ChainParser) -> None:
    result = await chain.parse("batch: send 1 SOL to a, send 2 SOL to b and stake 5 SOL")
    assert isinstance(result, Batch)
    assert [i.type for i in result.intents] == [IntentType.TRANSFER_SOL, IntentType.TRANSFER_SOL, IntentType.STAKE]


@pytest.mark.asyncio
async def test_batch_does_not_split_thousands(chain: ChainParser) -> None:
    result = await chain.parse("batch: send 1,000 USDC to a, stake 5 SOL")
    assert isinstance(result, Batch)
    assert result.intents[0].amount == Decimal(1000)


@pytest.mark.asyncio
async def test_batch_partial_failure(chain: ChainParser) -> None:
    result = await chain.parse("multi: send 1 SOL to a, send 1 SOL to nobody.sol")
    assert isinstance(result, PartialFailure)
    assert [f.step_index for f in result.failures] == [1]


@pytest.mark.asyncio
async def test_conditional_with_then_is_not_a_sequence(chain: ChainParser) -> None:
    result = await chain.parse("if sol > 150 then swap 1 SOL for USDC")
    assert isinstance(result, Conditional)
    assert result.condition == PriceCondition("SOL", ComparisonOperator.GREATER_THAN, Decimal(150))
    assert result.intent.type == IntentType.SWAP


@pytest.mark.asyncio
async def test_conditional_comma_separator(chain: ChainParser) -> None:
    result = await chain.parse("when my sol balance < 2, stake 1 SOL")
    assert isinstance(result, Conditional)
    assert result.condition == BalanceCondition("SOL", ComparisonOperator.LESS_THAN, Decimal(2))


@pytest.mark.asyncio
async def test_invalid_condition_is_localized(chain: ChainParser) -> None:
    result = await chain.parse("if the moon is full then send 1 SOL to bob")
    assert isinstance(result, InvalidCondition)
    assert result.text == "the moon is full"
    assert not result.ok


@pytest.mark.parametrize(
    "text,expected",
    [
        ("sol > 150", PriceCondition("SOL", ComparisonOperator.GREATER_THAN, Decimal(150))),
        ("price of bonk is above 0.00003", PriceCondition("BONK", ComparisonOperator.GREATER_THAN, Decimal("0.00003"))),
        ("sol drops below 100", PriceCondition("SOL", ComparisonOperator.LESS_THAN, Decimal(100))),
        ("sol hits 200", PriceCondition("SOL", ComparisonOperator.GREATER_EQUAL, Decimal(200))),
        ("jup <= 1.5", PriceCondition("JUP", ComparisonOperator.LESS_EQUAL, Decimal("1.5"))),
        ("usdc balance >= 1k", BalanceCondition("USDC", ComparisonOperator.GREATER_EQUAL, Decimal(1000))),
        ("slot reaches 250000000", SlotCondition(250_000_000)),
        ("alice.sol changes", AccountChangedCondition("alice.sol")),
        ("at 3pm", TimeCondition(time(15, 0))),
        ("time is 14:30", TimeCondition(time(14, 30))),
    ],
)
def test_parse_condition(text: str, expected) -> None:
    assert parse_condition(text) == expected


def test_parse_condition_rejects_bare_numbers_as_time() -> None:
    assert parse_condition("15") is None


@pytest.mark.asyncio
async def test_recurring_named_interval(chain: ChainParser) -> None:
    result = await chain.parse("every day swap 10 USDC for SOL")
    assert isinstance(result, Recurring)
    assert result.interval == DAILY
    assert result.start_time == FIXED_NOW
    assert result.intent.type == IntentType.SWAP


@pytest.mark.asyncio
async def test_recurring_numeric_interval(chain: ChainParser) -> None:
    result = await chain.parse("every 2 hours stake 1 SOL")
    assert isinstance(result, Recurring)
    assert result.interval.period == timedelta(hours=2)
    assert result.interval.seconds == 7200


@pytest.mark.asyncio
async def test_invalid_recurrence(chain: ChainParser) -> None:
    result = await chain.parse("every blue moon send 1 SOL to bob")
    assert isinstance(result, InvalidRecurrence)
    assert result.text == "blue"


@pytest.mark.asyncio
async def test_scheduled_tomorrow_at_3pm(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to bob tomorrow at 3pm")
    assert isinstance(result, Scheduled)
    assert result.execution_time == datetime(2024, 5, 11, 15, 0, tzinfo=timezone.utc)
    assert result.intent.recipient_resolved == BOB
    assert result.delay(FIXED_NOW) == timedelta(hours=27)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("send 1 SOL to bob in 2 hours", datetime(2024, 5, 10, 14, 0, tzinfo=timezone.utc)),
        ("send 1 SOL to bob next monday at 9am", datetime(2024, 5, 13, 9, 0, tzinfo=timezone.utc)),
        ("send 1 SOL to bob at 11am", datetime(2024, 5, 11, 11, 0, tzinfo=timezone.utc)),
        ("send 1 SOL to bob next week", datetime(2024, 5, 17, 12, 0, tzinfo=timezone.utc)),
        ("stake 2 SOL on 2024-06-01 08:30", datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)),
        ("send 1 SOL to bob at 3pm tomorrow", datetime(2024, 5, 11, 15, 0, tzinfo=timezone.utc)),
        ("send 1 SOL to bob at 9am on monday", datetime(2024, 5, 13, 9, 0, tzinfo=timezone.utc)),
    ],
)
@pytest.mark.asyncio
async def test_scheduled_time_forms(chain: ChainParser, text: str, expected: datetime) -> None:
    result = await chain.parse(text)
    assert isinstance(result, Scheduled)
    assert result.execution_time == expected


@pytest.mark.asyncio
async def test_invalid_schedule(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to bob tomorrow at 25pm")
    assert isinstance(result, InvalidSchedule)
    assert result.text == "tomorrow at 25pm"


@pytest.mark.asyncio
async def test_time_left_in_the_action_is_invalid(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to bob at 3pm blah tomorrow")
    assert isinstance(result, InvalidSchedule)
    assert result.text == "at 3pm blah tomorrow"


@pytest.mark.asyncio
async def test_scheduled_keeps_inline_tip(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to bob with 50k tip tomorrow")
    assert isinstance(result, Scheduled)
    assert result.tip == 50_000
    assert result.intent.amount == Decimal(1)
    assert result.execution_time == datetime(2024, 5, 11, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_single_with_inline_tip(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to bob with 50k tip")
    assert isinstance(result, Single)
    assert result.tip == 50_000
    assert result.intent.amount == Decimal(1)


@pytest.mark.asyncio
async def test_single_without_tip(chain: ChainParser) -> None:
    result = await chain.parse("swap 1 SOL for BONK")
    assert isinstance(result, Single)
    assert result.tip is None
    assert result.ok


@pytest.mark.asyncio
async def test_single_failure_wraps_parse_result(chain: ChainParser) -> None:
    result = await chain.parse("send 1 SOL to nobody.sol")
    assert isinstance(result, ChainFailure)
    assert result.step_index == 0
    assert "nobody.sol" in result.reason


@pytest.mark.asyncio
async def test_empty_input(chain: ChainParser) -> None:
    result = await chain.parse("   ")
    assert isinstance(result, Empty)
    assert not result.ok


@pytest.mark.parametrize(
    "text,expected",
    [
        ("cancel subscription abc123", "abc123"),
        ("stop watching", None),
        ("unsubscribe monitoring 42", "42"),
    ],
)
@pytest.mark.asyncio
async def test_cancel_subscription(chain: ChainParser, text: str, expected: str | None) -> None:
    result = await chain.parse(text)
    assert isinstance(result, CancelSubscription)
    assert result.subscription_id == expected


@pytest.mark.parametrize(
    "text,multiplier",
    [
        ("copy trades of bob", Decimal(1)),
        ("copy bob with 2x", Decimal(2)),
        ("mirror wallet bob with 50%", Decimal("0.5")),
    ],
)
@pytest.mark.asyncio
async def test_copy_trade(chain: ChainParser, text: str, multiplier: Decimal) -> None:
    result = await chain.parse(text)
    assert isinstance(result, CopyTrade)
    assert result.wallet == "bob"
    assert result.wallet_resolved == BOB
    assert result.multiplier == multiplier


@pytest.mark.asyncio
async def test_snipe(chain: ChainParser) -> None:
    result = await chain.parse(f"snipe token {PUMP_MINT} with 0.5 sol")
    assert isinstance(result, Snipe)
    assert result.token_identifier == PUMP_MINT
    assert result.amount == Decimal("0.5")
    assert result.use_jito


@pytest.mark.asyncio
async def test_bundle_marker_beats_sequence(chain: ChainParser) -> None:
    result = await chain.parse("bundle: send 1 SOL to a then send 1 SOL to b")
    assert isinstance(result, Bundle)


@pytest.mark.parametrize(
    "text,remaining,lamports",
    [
        ("send 1 SOL to bob with 50k tip", "send 1 SOL to bob", 50_000),
        ("send 1 SOL to bob with 5000 lamports", "send 1 SOL to bob", 5000),
        ("tip 10k send 1 SOL to bob", "send 1 SOL to bob", 10_000),
        ("25k jito tip", "", 25_000),
        ("send 1 SOL to bob", "send 1 SOL to bob", None),
    ],
)
def test_extract_tip(text: str, remaining: str, lamports: int | None) -> None:
    assert extract_tip(text) == (remaining, lamports)
