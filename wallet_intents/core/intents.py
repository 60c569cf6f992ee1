from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Mapping, Union

LAMPORTS_PER_SOL = Decimal(1_000_000_000)


class IntentType(str, Enum):
    TRANSFER_SOL = "transfer_sol"
    TRANSFER_TOKEN = "transfer_token"
    SWAP = "swap"
    SWAP_EXACT_OUT = "swap_exact_out"
    SWAP_LIMIT_ORDER = "swap_limit_order"
    STAKE = "stake"
    UNSTAKE = "unstake"
    CLAIM_REWARDS = "claim_rewards"
    NFT_TRANSFER = "nft_transfer"
    NFT_LIST = "nft_list"
    GET_ASSETS = "get_assets"
    JITO_TIP = "jito_tip"
    GET_PRIORITY_FEE = "get_priority_fee"
    SUBSCRIBE_ACCOUNT = "subscribe_account"
    SUBSCRIBE_SLOT = "subscribe_slot"
    PUMPFUN_BUY = "pumpfun_buy"
    PUMPFUN_SELL = "pumpfun_sell"
    PUMPFUN_CREATE = "pumpfun_create"
    GET_BALANCE = "get_balance"
    GET_TOKEN_BALANCE = "get_token_balance"
    RESOLVE_DOMAIN = "resolve_domain"
    REVERSE_LOOKUP = "reverse_lookup"
    GET_DOMAINS = "get_domains"
    ANALYZE_PRIVACY = "analyze_privacy"
    INFORMATIONAL = "informational"


def fmt_decimal(value: Decimal) -> str:
    """Plain notation without exponent or trailing zeros: 1E+3 -> "1000"."""
    return format(value.normalize(), "f")


def fmt_slippage(bps: int) -> str:
    return f"{fmt_decimal(Decimal(bps) / 100)}%"


def fmt_lamports(lamports: int) -> str:
    return f"{fmt_decimal(Decimal(lamports) / LAMPORTS_PER_SOL)} SOL"


@dataclass(frozen=True)
class TransactionIntent:
    type: ClassVar[IntentType]

    def summary(self) -> str:
        raise NotImplementedError

    def details(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class TransferSol(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.TRANSFER_SOL

    amount: Decimal
    recipient: str
    recipient_resolved: str | None = None

    def summary(self) -> str:
        return f"Transfer {fmt_decimal(self.amount)} SOL to {self.recipient_resolved or self.recipient}"

    def details(self) -> dict[str, str]:
        return {
            "Amount": f"{fmt_decimal(self.amount)} SOL",
            "Recipient": self.recipient,
            "Resolved": self.recipient_resolved or "pending",
        }


@dataclass(frozen=True)
class TransferToken(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.TRANSFER_TOKEN

    amount: Decimal
    token: str
    recipient: str
    token_mint: str | None = None
    recipient_resolved: str | None = None

    def summary(self) -> str:
        return f"Transfer {fmt_decimal(self.amount)} {self.token} to {self.recipient_resolved or self.recipient}"

    def details(self) -> dict[str, str]:
        return {
            "Amount": f"{fmt_decimal(self.amount)} {self.token}",
            "Token Mint": self.token_mint or "pending",
            "Recipient": self.recipient,
            "Resolved": self.recipient_resolved or "pending",
        }


@dataclass(frozen=True)
class Swap(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.SWAP

    input_amount: Decimal
    input_token: str
    output_token: str
    input_mint: str | None = None
    output_mint: str | None = None
    slippage_bps: int = 50
    use_jito: bool = False

    def summary(self) -> str:
        text = f"Swap {fmt_decimal(self.input_amount)} {self.input_token} for {self.output_token}"
        return f"{text} (JITO protected)" if self.use_jito else text

    def details(self) -> dict[str, str]:
        return {
            "Input": f"{fmt_decimal(self.input_amount)} {self.input_token}",
            "Output": self.output_token,
            "Slippage": fmt_slippage(self.slippage_bps),
            "MEV Protected": str(self.use_jito).lower(),
        }


@dataclass(frozen=True)
class SwapExactOut(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.SWAP_EXACT_OUT

    output_amount: Decimal
    output_token: str
    input_token: str
    output_mint: str | None = None
    input_mint: str | None = None
    slippage_bps: int = 50

    def summary(self) -> str:
        return f"Buy {fmt_decimal(self.output_amount)} {self.output_token} with {self.input_token}"

    def details(self) -> dict[str, str]:
        return {
            "Output": f"{fmt_decimal(self.output_amount)} {self.output_token}",
            "Input Token": self.input_token,
            "Slippage": fmt_slippage(self.slippage_bps),
        }


@dataclass(frozen=True)
class SwapLimitOrder(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.SWAP_LIMIT_ORDER

    input_amount: Decimal
    input_token: str
    output_token: str
    target_price: Decimal
    expiry: int | None = None

    def summary(self) -> str:
        return (
            f"Limit order: Swap {fmt_decimal(self.input_amount)} {self.input_token} "
            f"for {self.output_token} at {fmt_decimal(self.target_price)}"
        )

    def details(self) -> dict[str, str]:
        return {
            "Input": f"{fmt_decimal(self.input_amount)} {self.input_token}",
            "Output": self.output_token,
            "Target Price": fmt_decimal(self.target_price),
            "Expiry": str(self.expiry) if self.expiry is not None else "no expiry",
        }


@dataclass(frozen=True)
class Stake(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.STAKE

    amount: Decimal
    validator: str | None = None
    protocol: str | None = None

    def summary(self) -> str:
        text = f"Stake {fmt_decimal(self.amount)} SOL"
        if self.protocol:
            text += f" with {self.protocol}"
        if self.validator:
            text += f" to {self.validator}"
        return text

    def details(self) -> dict[str, str]:
        return {
            "Amount": f"{fmt_decimal(self.amount)} SOL",
            "Protocol": self.protocol or "native",
            "Validator": self.validator or "auto-select",
        }


@dataclass(frozen=True)
class Unstake(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.UNSTAKE

    amount: Decimal
    protocol: str | None = None

    def summary(self) -> str:
        text = f"Unstake {fmt_decimal(self.amount)} SOL"
        return f"{text} from {self.protocol}" if self.protocol else text

    def details(self) -> dict[str, str]:
        return {"Amount": f"{fmt_decimal(self.amount)} SOL", "Protocol": self.protocol or "native"}


@dataclass(frozen=True)
class ClaimRewards(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.CLAIM_REWARDS

    def summary(self) -> str:
        return "Claim staking rewards"


@dataclass(frozen=True)
class JitoTip(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.JITO_TIP

    # Filled in by the executor when the floor is fetched.
    tip_lamports: int = 0

    def summary(self) -> str:
        return f"Get JITO tip floor (current: {fmt_lamports(self.tip_lamports)})"

    def details(self) -> dict[str, str]:
        return {"Tip": fmt_lamports(self.tip_lamports)}


@dataclass(frozen=True)
class PriorityFee(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.GET_PRIORITY_FEE

    level: str | None = None

    def summary(self) -> str:
        return f"Get priority fee estimate ({self.level or 'all levels'})"

    def details(self) -> dict[str, str]:
        return {"Level": self.level or "all"}


@dataclass(frozen=True)
class PumpfunBuy(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.PUMPFUN_BUY

    token_mint: str
    sol_amount: Decimal
    slippage_bps: int = 100

    def summary(self) -> str:
        return f"Buy PumpFun token with {fmt_decimal(self.sol_amount)} SOL"

    def details(self) -> dict[str, str]:
        return {
            "Token": self.token_mint,
            "Amount": f"{fmt_decimal(self.sol_amount)} SOL",
            "Slippage": fmt_slippage(self.slippage_bps),
        }


@dataclass(frozen=True)
class PumpfunSell(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.PUMPFUN_SELL

    token_mint: str
    # Zero means "sell everything".
    token_amount: Decimal
    slippage_bps: int = 100

    def summary(self) -> str:
        if not self.token_amount:
            return "Sell all PumpFun tokens"
        return f"Sell {fmt_decimal(self.token_amount)} PumpFun tokens"

    def details(self) -> dict[str, str]:
        return {
            "Token": self.token_mint,
            "Amount": fmt_decimal(self.token_amount) if self.token_amount else "all",
            "Slippage": fmt_slippage(self.slippage_bps),
        }


@dataclass(frozen=True)
class PumpfunCreate(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.PUMPFUN_CREATE

    name: str
    symbol: str
    description: str = ""
    initial_buy_amount: Decimal | None = None

    def summary(self) -> str:
        return f"Create PumpFun token: {self.symbol}"

    def details(self) -> dict[str, str]:
        initial = f"{fmt_decimal(self.initial_buy_amount)} SOL" if self.initial_buy_amount is not None else "none"
        return {
            "Name": self.name,
            "Symbol": self.symbol,
            "Description": self.description,
            "Initial Buy": initial,
        }


@dataclass(frozen=True)
class NftTransfer(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.NFT_TRANSFER

    nft_address: str
    recipient: str
    recipient_resolved: str | None = None

    def summary(self) -> str:
        return f"Transfer NFT to {self.recipient_resolved or self.recipient}"

    def details(self) -> dict[str, str]:
        return {"NFT": self.nft_address, "Recipient": self.recipient}


@dataclass(frozen=True)
class NftList(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.NFT_LIST

    nft_address: str
    price: Decimal
    marketplace: str = "MagicEden"

    def summary(self) -> str:
        return f"List NFT for {fmt_decimal(self.price)} SOL on {self.marketplace}"

    def details(self) -> dict[str, str]:
        return {"NFT": self.nft_address, "Price": f"{fmt_decimal(self.price)} SOL", "Marketplace": self.marketplace}


@dataclass(frozen=True)
class GetAssets(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.GET_ASSETS

    owner: str
    owner_resolved: str | None = None

    def summary(self) -> str:
        return f"Get assets for {self.owner_resolved or self.owner}"

    def details(self) -> dict[str, str]:
        return {"Owner": self.owner}


@dataclass(frozen=True)
class GetBalance(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.GET_BALANCE

    address: str
    address_resolved: str | None = None

    def summary(self) -> str:
        return f"Get SOL balance for {self.address_resolved or self.address}"

    def details(self) -> dict[str, str]:
        return {"Address": self.address}


@dataclass(frozen=True)
class GetTokenBalance(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.GET_TOKEN_BALANCE

    address: str
    token: str
    address_resolved: str | None = None

    def summary(self) -> str:
        return f"Get {self.token} balance for {self.address_resolved or self.address}"

    def details(self) -> dict[str, str]:
        return {"Address": self.address, "Token": self.token}


@dataclass(frozen=True)
class ResolveDomain(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.RESOLVE_DOMAIN

    domain: str

    def summary(self) -> str:
        return f"Resolve domain {self.domain}"

    def details(self) -> dict[str, str]:
        return {"Domain": self.domain}


@dataclass(frozen=True)
class ReverseLookup(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.REVERSE_LOOKUP

    address: str

    def summary(self) -> str:
        return f"Lookup domain for {self.address}"

    def details(self) -> dict[str, str]:
        return {"Address": self.address}


@dataclass(frozen=True)
class GetDomains(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.GET_DOMAINS

    owner: str
    owner_resolved: str | None = None

    def summary(self) -> str:
        return f"Get domains owned by {self.owner_resolved or self.owner}"

    def details(self) -> dict[str, str]:
        return {"Owner": self.owner}


@dataclass(frozen=True)
class AnalyzePrivacy(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.ANALYZE_PRIVACY

    address: str
    address_resolved: str | None = None

    def summary(self) -> str:
        return f"Analyze privacy for {self.address_resolved or self.address}"

    def details(self) -> dict[str, str]:
        return {"Address": self.address}


@dataclass(frozen=True)
class SubscribeAccount(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.SUBSCRIBE_ACCOUNT

    address: str
    address_resolved: str | None = None

    def summary(self) -> str:
        return f"Subscribe to account updates for {self.address_resolved or self.address}"

    def details(self) -> dict[str, str]:
        return {"Address": self.address}


@dataclass(frozen=True)
class SubscribeSlot(TransactionIntent):
    type: ClassVar[IntentType] = IntentType.SUBSCRIBE_SLOT

    def summary(self) -> str:
        return "Subscribe to slot updates"


@dataclass(frozen=True)
class Informational(TransactionIntent):
    """Non-transactional answer, used for conversation meta responses."""

    type: ClassVar[IntentType] = IntentType.INFORMATIONAL

    message: str

    def summary(self) -> str:
        return self.message


# Field names used when a pending intent is rewritten in place.
AMOUNT_FIELDS: Mapping[type, str] = {
    TransferSol: "amount",
    TransferToken: "amount",
    Swap: "input_amount",
    SwapExactOut: "output_amount",
    SwapLimitOrder: "input_amount",
    Stake: "amount",
    Unstake: "amount",
    PumpfunBuy: "sol_amount",
    PumpfunSell: "token_amount",
    NftList: "price",
}
RECIPIENT_TYPES = (TransferSol, TransferToken, NftTransfer)
SLIPPAGE_TYPES = (Swap, SwapExactOut, PumpfunBuy, PumpfunSell)


def intent_amount(intent: TransactionIntent) -> Decimal | None:
    name = AMOUNT_FIELDS.get(type(intent))
    return getattr(intent, name) if name else None


def intent_recipient(intent: TransactionIntent) -> str | None:
    # The name as the user wrote it, so it can be substituted back into text.
    if isinstance(intent, RECIPIENT_TYPES):
        return intent.recipient
    return None


def intent_token(intent: TransactionIntent) -> str | None:
    if isinstance(intent, TransferToken):
        return intent.token
    if isinstance(intent, (Swap, SwapExactOut, SwapLimitOrder)):
        return intent.output_token
    if isinstance(intent, GetTokenBalance):
        return intent.token
    if isinstance(intent, (PumpfunBuy, PumpfunSell)):
        return intent.token_mint
    if isinstance(intent, TransferSol):
        return "SOL"
    return None


def with_amount(intent: TransactionIntent, amount: Decimal) -> TransactionIntent | None:
    name = AMOUNT_FIELDS.get(type(intent))
    if name is None:
        return None
    return replace(intent, **{name: amount})


def with_recipient(intent: TransactionIntent, recipient: str, resolved: str) -> TransactionIntent | None:
    if not isinstance(intent, RECIPIENT_TYPES):
        return None
    return replace(intent, recipient=recipient, recipient_resolved=resolved)


def with_slippage(intent: TransactionIntent, bps: int) -> TransactionIntent | None:
    if not isinstance(intent, SLIPPAGE_TYPES):
        return None
    return replace(intent, slippage_bps=bps)


@dataclass(frozen=True)
class CommandSuggestion:
    template: str
    description: str
    examples: tuple[str, ...] = ()


def _check_confidence(value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"confidence out of range: {value}")


@dataclass(frozen=True)
class Success:
    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "success"

    intent: TransactionIntent
    confidence: float
    raw_input: str

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    def summary(self) -> str:
        return self.intent.summary()


@dataclass(frozen=True)
class Ambiguous:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "ambiguous"

    primary: TransactionIntent
    alternatives: tuple[TransactionIntent, ...]
    confidence: float

    def __post_init__(self) -> None:
        _check_confidence(self.confidence)

    def summary(self) -> str:
        options = "; ".join(i.summary() for i in (self.primary, *self.alternatives))
        return f"Did you mean: {options}?"


@dataclass(frozen=True)
class NeedsInfo:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "needs_info"

    intent_type: IntentType
    missing: tuple[str, ...]
    partial: Mapping[str, str] = field(default_factory=dict)
    suggestion: str = ""

    def summary(self) -> str:
        return self.suggestion or f"Missing: {', '.join(self.missing)}"


@dataclass(frozen=True)
class Unknown:
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "unknown"

    input: str
    suggestions: tuple[CommandSuggestion, ...] = ()

    def summary(self) -> str:
        return f"I didn't understand '{self.input}'."


ParseResult = Union[Success, Ambiguous, NeedsInfo, Unknown]
