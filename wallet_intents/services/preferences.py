from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from wallet_intents.adapters.storage import MevPreferences, UserPreferences
from wallet_intents.core.intents import (
    PumpfunBuy,
    Swap,
    SwapExactOut,
    TransactionIntent,
    TransferSol,
    TransferToken,
    fmt_decimal,
)

if TYPE_CHECKING:
    from wallet_intents.services.conversation import ConversationContext

MAX_SUGGESTIONS = 5
TIP_FLOOR_HOURS = range(9, 18)


class SuggestionType(str, Enum):
    FREQUENT_RECIPIENT = "frequent_recipient"
    FREQUENT_TOKEN = "frequent_token"
    FREQUENT_AMOUNT = "frequent_amount"
    MEV_PROTECTION = "mev_protection"
    RISK_MANAGEMENT = "risk_management"
    MEV_INFO = "mev_info"


@dataclass(frozen=True)
class ContextualSuggestion:
    text: str
    type: SuggestionType
    relevance: float


def learn_from_intent(user: UserPreferences, mev: MevPreferences, intent: TransactionIntent) -> None:
    """Update frequency counters. These only ever influence suggestion ranking."""
    if isinstance(intent, TransferSol):
        user.record(intent_type=intent.type.value, recipient=intent.recipient, amount=fmt_decimal(intent.amount))
    elif isinstance(intent, TransferToken):
        user.record(
            intent_type=intent.type.value,
            recipient=intent.recipient,
            token=intent.token,
            amount=fmt_decimal(intent.amount),
        )
    elif isinstance(intent, Swap):
        user.record(intent_type=intent.type.value, token=intent.input_token)
        user.record(token=intent.output_token)
        mev.record_swap(intent.use_jito)
    elif isinstance(intent, SwapExactOut):
        user.record(intent_type=intent.type.value, token=intent.output_token)
    elif isinstance(intent, PumpfunBuy):
        user.record(intent_type=intent.type.value, amount=fmt_decimal(intent.sol_amount))
    else:
        user.record(intent_type=intent.type.value)


def rank_suggestions(
    context: "ConversationContext",
    user: UserPreferences,
    mev: MevPreferences,
    now: datetime,
) -> list[ContextualSuggestion]:
    suggestions: list[ContextualSuggestion] = []
    intent = context.last_intent

    if isinstance(intent, TransferSol):
        for recipient in user.frequent_recipients(2):
            if recipient != intent.recipient:
                suggestions.append(
                    ContextualSuggestion(
                        f"send {fmt_decimal(intent.amount)} SOL to {recipient}",
                        SuggestionType.FREQUENT_RECIPIENT,
                        0.8,
                    )
                )
    elif isinstance(intent, Swap):
        if context.mev_enabled and not intent.use_jito and mev.jito_usage_rate > 0.5:
            suggestions.append(ContextualSuggestion("swap with JITO protection", SuggestionType.MEV_PROTECTION, 0.9))
    elif isinstance(intent, PumpfunBuy):
        suggestions.append(ContextualSuggestion("set stop loss at 50%", SuggestionType.RISK_MANAGEMENT, 0.7))

    top_token = user.top_token()
    if top_token and top_token[1] > 1 and top_token[0] != context.last_token:
        suggestions.append(
            ContextualSuggestion(f"check my {top_token[0]} balance", SuggestionType.FREQUENT_TOKEN, 0.6)
        )

    top_amount = user.top_amount()
    if top_amount and top_amount[1] > 1 and context.last_recipient and top_amount[0] != context.last_amount:
        suggestions.append(
            ContextualSuggestion(
                f"send {fmt_decimal(top_amount[0])} SOL to {context.last_recipient}",
                SuggestionType.FREQUENT_AMOUNT,
                0.6,
            )
        )

    if context.mev_enabled and now.hour in TIP_FLOOR_HOURS:
        suggestions.append(ContextualSuggestion("check JITO tip floor", SuggestionType.MEV_INFO, 0.5))

    suggestions.sort(key=lambda s: s.relevance, reverse=True)
    return suggestions[:MAX_SUGGESTIONS]
