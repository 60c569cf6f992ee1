from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import ALICE, BOB, CAROL, fixed_clock
from wallet_intents.adapters.resolver import StaticEntityResolver
from wallet_intents.adapters.storage import InMemoryPreferenceStore
from wallet_intents.core.chain import ChainFailure, ChainParser, Scheduled, Single
from wallet_intents.core.intents import Informational, IntentType, Swap, TransferSol
from wallet_intents.core.nlu import IntentParser
from wallet_intents.services.conversation import ConversationContext, ConversationEngine, EngineState


def make_engine(chain: ChainParser, resolver: StaticEntityResolver, **kwargs) -> ConversationEngine:
    return ConversationEngine(chain, resolver, clock=fixed_clock, **kwargs)


@pytest.fixture
def engine(chain: ChainParser, resolver: StaticEntityResolver) -> ConversationEngine:
    return make_engine(chain, resolver)


@pytest.mark.asyncio
async def test_successful_turn_updates_context(engine: ConversationEngine) -> None:
    turn = await engine.process("send 1 SOL to bob")
    assert turn.ok
    assert turn.meta is None
    assert not turn.requires_execution
    ctx = engine.context
    assert isinstance(ctx.last_intent, TransferSol)
    assert ctx.last_recipient == "bob"
    assert ctx.last_amount == Decimal(1)
    assert ctx.last_token == "SOL"
    assert ctx.turn_count == 1
    assert ctx.pending == turn.result
    assert engine.can_undo and not engine.can_redo


@pytest.mark.asyncio
async def test_untouched_fields_carry_forward(engine: ConversationEngine) -> None:
    await engine.process("send 2 SOL to bob")
    await engine.process("get jito tip")
    ctx = engine.context
    assert ctx.last_intent.type == IntentType.JITO_TIP
    assert ctx.last_recipient == "bob"
    assert ctx.last_amount == Decimal(2)


@pytest.mark.asyncio
async def test_double_that_to_them(chain: ChainParser, resolver: StaticEntityResolver) -> None:
    context = ConversationContext(last_amount=Decimal(5), last_recipient="alice.sol")
    engine = make_engine(chain, resolver, context=context)

    turn = await engine.process("send double that to them")

    assert turn.resolved_input == "send 10 to alice.sol"
    assert isinstance(turn.result, Single)
    intent = turn.result.intent
    assert intent.amount == Decimal(10)
    assert intent.recipient == "alice.sol"
    assert intent.recipient_resolved == ALICE


@pytest.mark.parametrize(
    "text,expected",
    [
        ("send half of that to bob", "send 2.5 to bob"),
        ("send the same amount to that wallet", "send 5 to alice.sol"),
        ("swap 1 SOL for that token", "swap 1 SOL for BONK"),
        ("buy more of it with USDC", "buy more of BONK with USDC"),
    ],
)
def test_reference_substitution(chain: ChainParser, resolver: StaticEntityResolver, text: str, expected: str) -> None:
    context = ConversationContext(last_amount=Decimal(5), last_recipient="alice.sol", last_token="BONK")
    engine = make_engine(chain, resolver, context=context)
    assert engine.resolve_references(text) == expected


def test_references_without_context_are_left_alone(engine: ConversationEngine) -> None:
    assert engine.resolve_references("send double that to them") == "send double that to them"


@pytest.mark.asyncio
async def test_undo_redo_symmetry(engine: ConversationEngine) -> None:
    snapshots = [engine.context]
    for text in ("send 1 SOL to bob", "swap 1 SOL for BONK", "stake 2 SOL with marinade"):
        turn = await engine.process(text)
        assert turn.ok
        snapshots.append(engine.context)

    for _ in range(3):
        turn = await engine.process("undo")
        assert turn.ok and turn.meta == "undo"
    assert engine.context == snapshots[0]

    for _ in range(3):
        turn = await engine.process("redo")
        assert turn.ok and turn.meta == "redo"
    assert engine.context == snapshots[-1]


@pytest.mark.asyncio
async def test_undo_with_empty_stack_fails(engine: ConversationEngine) -> None:
    turn = await engine.process("undo")
    assert isinstance(turn.result, ChainFailure)
    assert turn.result.reason == "Nothing to undo."
    redo = await engine.process("redo")
    assert not redo.ok


@pytest.mark.asyncio
async def test_new_turn_clears_redo(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    await engine.process("go back")
    assert engine.can_redo
    await engine.process("swap 1 SOL for BONK")
    assert not engine.can_redo


@pytest.mark.asyncio
async def test_undo_stack_is_bounded(chain: ChainParser, resolver: StaticEntityResolver) -> None:
    engine = make_engine(chain, resolver, max_undo=2)
    for amount in (1, 2, 3):
        await engine.process(f"send {amount} SOL to bob")
    assert (await engine.process("undo")).ok
    assert (await engine.process("undo")).ok
    assert not (await engine.process("undo")).ok
    assert engine.context.last_amount == Decimal(1)


@pytest.mark.asyncio
async def test_failure_records_error_only(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    before = engine.context

    turn = await engine.process("send 1 SOL to nobody.sol")

    assert not turn.ok
    after = engine.context
    assert after.last_error and "nobody.sol" in after.last_error
    assert after.last_intent == before.last_intent
    assert after.pending == before.pending
    assert after.last_amount == before.last_amount
    await engine.process("undo")
    assert engine.context == ConversationContext.empty()


@pytest.mark.asyncio
async def test_confirm_requires_pending(engine: ConversationEngine) -> None:
    turn = await engine.process("confirm")
    assert not turn.ok
    assert turn.result.reason == "Nothing to confirm."


@pytest.mark.asyncio
async def test_confirm_marks_pending(engine: ConversationEngine) -> None:
    sent = await engine.process("send 1 SOL to bob")
    turn = await engine.process("yes")
    assert turn.ok
    assert turn.requires_execution
    assert turn.result == sent.result
    assert engine.context.confirmed


@pytest.mark.asyncio
async def test_cancel_always_succeeds_and_is_undoable(engine: ConversationEngine) -> None:
    empty = await engine.process("cancel")
    assert empty.ok
    assert engine.context.pending is None

    await engine.process("send 1 SOL to bob")
    before = engine.context
    turn = await engine.process("nevermind")
    assert turn.ok and turn.meta == "cancel"
    assert engine.context.last_intent is None
    assert engine.context.pending is None
    assert engine.context.last_recipient is None

    await engine.process("undo")
    assert engine.context == before


@pytest.mark.asyncio
async def test_repeat_reemits_last_success(engine: ConversationEngine) -> None:
    first = await engine.process("swap 1 SOL for BONK")
    turn = await engine.process("do it again")
    assert turn.meta == "repeat"
    assert turn.result == first.result
    assert turn.resolved_input == "swap 1 SOL for BONK"


@pytest.mark.asyncio
async def test_repeat_without_history_fails(engine: ConversationEngine) -> None:
    assert not (await engine.process("again")).ok


@pytest.mark.asyncio
async def test_modify_amount(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    turn = await engine.process("make it 2")
    assert turn.ok and turn.meta == "modify"
    assert turn.result.intent.amount == Decimal(2)
    assert engine.context.last_amount == Decimal(2)
    assert not engine.context.confirmed


@pytest.mark.asyncio
async def test_modify_recipient(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    turn = await engine.process("change it to alice.sol")
    assert turn.result.intent.recipient == "alice.sol"
    assert turn.result.intent.recipient_resolved == ALICE
    assert turn.result.intent.amount == Decimal(1)


@pytest.mark.asyncio
async def test_modify_tip_and_slippage(engine: ConversationEngine) -> None:
    await engine.process("swap 1 SOL for BONK")
    tipped = await engine.process("make it 50k tip")
    assert isinstance(tipped.result, Single)
    assert tipped.result.tip == 50_000

    slipped = await engine.process("make it 1% slippage")
    assert isinstance(slipped.result.intent, Swap)
    assert slipped.result.intent.slippage_bps == 100


@pytest.mark.asyncio
async def test_modify_names_unconsumed_text(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    turn = await engine.process("make it banana")
    assert not turn.ok
    assert "banana" in turn.result.reason


@pytest.mark.asyncio
async def test_modify_without_pending_fails(engine: ConversationEngine) -> None:
    assert not (await engine.process("make it 5")).ok


@pytest.mark.asyncio
async def test_modify_scheduled_keeps_schedule(engine: ConversationEngine) -> None:
    first = await engine.process("send 1 SOL to bob tomorrow at 3pm")
    turn = await engine.process("make it 3")
    assert isinstance(turn.result, Scheduled)
    assert turn.result.execution_time == first.result.execution_time
    assert turn.result.intent.amount == Decimal(3)


@pytest.mark.asyncio
async def test_help_does_not_touch_context(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob")
    before = engine.context
    turn = await engine.process("help")
    assert turn.meta == "help"
    assert isinstance(turn.result.intent, Informational)
    assert "undo" in turn.result.intent.message
    assert engine.context == before


@pytest.mark.asyncio
async def test_default_tip_reference(engine: ConversationEngine) -> None:
    setting = await engine.process("set default tip 10k")
    assert setting.meta == "mev"
    assert engine.mev.default_tip == 10_000

    turn = await engine.process("send 1 SOL to bob with default tip")
    assert turn.resolved_input == "send 1 SOL to bob with 10000 lamports tip"
    assert turn.result.tip == 10_000
    assert engine.mev.last_tip == 10_000


@pytest.mark.asyncio
async def test_mev_toggle(engine: ConversationEngine) -> None:
    await engine.process("disable mev protection")
    assert not engine.context.mev_enabled
    await engine.process("turn on jito")
    assert engine.context.mev_enabled


@pytest.mark.asyncio
async def test_cancel_subscription_is_not_a_meta_cancel(engine: ConversationEngine) -> None:
    turn = await engine.process("cancel subscription abc123")
    assert turn.meta is None
    assert turn.result.kind == "cancel_subscription"


@pytest.mark.asyncio
async def test_preferences_learned_and_suggestions_ranked(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to a")
    await engine.process("send 1 SOL to a")
    await engine.process("send 1 SOL to b")
    turn = await engine.process("send 2 SOL to bob")

    assert engine.user.recipients == {"a": 2, "b": 1, "bob": 1}
    texts = [s.text for s in turn.suggestions]
    assert texts[:2] == ["send 2 SOL to a", "send 2 SOL to b"]
    # Noon falls inside the tip floor window.
    assert "check JITO tip floor" in texts
    relevances = [s.relevance for s in turn.suggestions]
    assert relevances == sorted(relevances, reverse=True)


@pytest.mark.asyncio
async def test_state_is_published(engine: ConversationEngine) -> None:
    seen: list[EngineState] = []
    unsubscribe = engine.state.subscribe(seen.append, replay=False)
    await engine.process("send 1 SOL to bob")
    unsubscribe()
    await engine.process("swap 1 SOL for BONK")

    assert len(seen) == 1
    assert seen[0].context.last_recipient == "bob"


@pytest.mark.asyncio
async def test_history_and_store_persistence(chain: ChainParser, resolver: StaticEntityResolver) -> None:
    store = InMemoryPreferenceStore()
    engine = make_engine(chain, resolver, store=store)
    await engine.process("send 1 SOL to bob")
    await engine.process("swap 1 SOL for BONK with jito")
    assert [t.input for t in engine.history] == ["send 1 SOL to bob", "swap 1 SOL for BONK with jito"]

    restored = make_engine(chain, resolver, store=store)
    await restored.load()
    assert restored.user.recipients == {"bob": 1}
    assert restored.mev.jito_swaps == 1
    assert restored.mev.jito_usage_rate == 1.0
    assert [record.kind for record in restored.previous_session] == ["single", "single"]


@pytest.mark.asyncio
async def test_batch_turn_learns_every_intent(engine: ConversationEngine) -> None:
    await engine.process("batch: send 1 SOL to a, send 1 SOL to b")
    assert engine.user.recipients == {"a": 1, "b": 1}
    assert engine.context.last_recipient == "b"
    assert engine.context.last_intent.recipient_resolved == CAROL


@pytest.mark.asyncio
async def test_ambiguous_recipient_is_a_failure_turn() -> None:
    resolver = StaticEntityResolver(address_book={"bob": BOB}, domains={"bob.sol": CAROL})

    engine = make_engine(ChainParser(IntentParser(resolver), clock=fixed_clock), resolver)
    turn = await engine.process("send 1 SOL to bob")
    assert turn.result.kind == "ambiguous"
    assert engine.context.last_error
    assert not engine.can_undo


@pytest.mark.asyncio
async def test_disabling_mev_hides_protection_suggestions(engine: ConversationEngine) -> None:
    await engine.process("swap 1 SOL for BONK with jito")
    await engine.process("swap 1 SOL for BONK with jito")
    await engine.process("disable mev protection")

    turn = await engine.process("swap 1 SOL for USDC")

    assert not engine.context.mev_enabled
    assert [s.text for s in turn.suggestions] == ["check my SOL balance"]

    enabled = await engine.process("enable mev protection")
    assert enabled.suggestions[0].text == "swap with JITO protection"
    assert "check JITO tip floor" in [s.text for s in enabled.suggestions]


@pytest.mark.asyncio
async def test_failed_turn_keeps_published_suggestions(engine: ConversationEngine) -> None:
    sent = await engine.process("send 1 SOL to bob")
    assert sent.suggestions

    failed = await engine.process("send 1 SOL to nobody.sol")

    assert not failed.ok
    assert failed.suggestions == sent.suggestions
    assert engine.suggestions == sent.suggestions


@pytest.mark.asyncio
async def test_scheduled_tip_can_be_modified(engine: ConversationEngine) -> None:
    await engine.process("send 1 SOL to bob with 50k tip tomorrow")
    assert engine.context.tip == 50_000

    turn = await engine.process("make it 20k tip")

    assert isinstance(turn.result, Scheduled)
    assert turn.result.tip == 20_000
    assert engine.mev.last_tip == 20_000


@pytest.mark.asyncio
async def test_history_accumulates_across_sessions(chain: ChainParser, resolver: StaticEntityResolver) -> None:
    store = InMemoryPreferenceStore()
    first = make_engine(chain, resolver, store=store)
    await first.process("send 1 SOL to bob")
    await first.process("swap 1 SOL for BONK")

    second = make_engine(chain, resolver, store=store)
    await second.process("stake 2 SOL with marinade")

    third = make_engine(chain, resolver, store=store)
    await third.load()
    assert [record.input for record in third.previous_session] == [
        "send 1 SOL to bob",
        "swap 1 SOL for BONK",
        "stake 2 SOL with marinade",
    ]

    bounded = make_engine(chain, resolver, store=store, max_history=2)
    await bounded.process("get jito tip")
    await third.load()
    assert [record.input for record in third.previous_session] == ["stake 2 SOL with marinade", "get jito tip"]
