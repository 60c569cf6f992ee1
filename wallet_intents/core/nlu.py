from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Union

from wallet_intents.adapters.resolver import EntityResolver, ResolverError
from wallet_intents.adapters.tokens import (
    TokenInfo,
    find_staking_protocol,
    is_base58_address,
    is_domain,
    normalize_token_symbol,
)
from wallet_intents.core.intents import (
    AnalyzePrivacy,
    Ambiguous,
    ClaimRewards,
    CommandSuggestion,
    GetAssets,
    GetBalance,
    GetDomains,
    GetTokenBalance,
    IntentType,
    JitoTip,
    NeedsInfo,
    NftList,
    NftTransfer,
    ParseResult,
    PriorityFee,
    PumpfunBuy,
    PumpfunCreate,
    PumpfunSell,
    ResolveDomain,
    ReverseLookup,
    Stake,
    SubscribeAccount,
    SubscribeSlot,
    Success,
    Swap,
    SwapExactOut,
    SwapLimitOrder,
    TransactionIntent,
    TransferSol,
    TransferToken,
    Unknown,
    Unstake,
    fmt_decimal,
)

logger = logging.getLogger(__name__)

AMOUNT = r"(?:\d{1,3}(?:,\d{3})+(?:\.\d+)?[kmb]?|\d+(?:_\d+)*(?:\.\d+)?[kmb]?|\.\d+)"
TOKEN = r"\$?[a-z][a-z0-9]{1,14}"
DOMAIN = r"[a-z0-9\-]+\.(?:sol|skr)\b"
BASE58 = r"\b(?-i:[1-9A-HJ-NP-Za-km-z]{32,44})\b"
ADDRESS = rf"(?:{DOMAIN}|{BASE58}|@[a-z0-9_]+|[a-z][a-z0-9_]{{0,31}}\b)"
SOL_UNIT = r"(?:sol\b|◎)"
WHAT = r"what(?:'s|\s+is|\s+are)?"

AMOUNT_SUFFIXES = {"k": Decimal(1_000), "m": Decimal(1_000_000), "b": Decimal(1_000_000_000)}

CANONICAL = 0.95
VARIANT = 0.90
AMBIGUOUS = 0.50

QUOTE_GLYPHS = str.maketrans({"‘": "'", "’": "'", "“": '"', "”": '"'})
WHITESPACE_RE = re.compile(r"\s+")

Outcome = Union[TransactionIntent, ParseResult]
Extractor = Callable[[re.Match, str, EntityResolver], Awaitable[Outcome]]

COMMAND_SUGGESTIONS: tuple[CommandSuggestion, ...] = (
    CommandSuggestion(
        "send {amount} SOL to {address}",
        "Transfer SOL to another wallet",
        ("send 1 SOL to alice.sol", "send 0.5 SOL to moonmanquark.skr"),
    ),
    CommandSuggestion(
        "swap {amount} {token} for {token}",
        "Swap tokens through the Jupiter aggregator",
        ("swap 100 USDC for SOL", "swap 1 SOL for BONK with jito"),
    ),
    CommandSuggestion(
        "buy pumpfun {mint} with {amount} SOL",
        "Buy a PumpFun token",
        ("buy pumpfun 9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump with 0.1 SOL",),
    ),
    CommandSuggestion(
        "stake {amount} SOL with {protocol}",
        "Stake SOL for rewards",
        ("stake 10 SOL with marinade", "stake 5 SOL with jito"),
    ),
    CommandSuggestion(
        "check balance of {address}",
        "Get SOL balance",
        ("check balance of alice.sol", "check my USDC balance"),
    ),
    CommandSuggestion(
        "resolve {domain}",
        "Lookup domain address",
        ("resolve alice.sol", "what is moonmanquark.skr"),
    ),
    CommandSuggestion(
        "get jito tip",
        "Check current JITO tip floor",
        ("get jito tip", "what's the jito tip floor"),
    ),
    CommandSuggestion(
        "subscribe {address}",
        "Monitor account updates",
        ("subscribe alice.sol", "watch moonmanquark.skr"),
    ),
)


def normalize_input(text: str) -> str:
    """Trim, collapse whitespace and unify quote glyphs. Case is kept so
    base58 captures survive; callers lowercase for keyword checks."""
    return WHITESPACE_RE.sub(" ", (text or "").translate(QUOTE_GLYPHS)).strip()


def parse_amount(raw: str) -> Decimal:
    cleaned = raw.strip().lower().replace(",", "").replace("_", "")
    multiplier = Decimal(1)
    if cleaned[-1:] in AMOUNT_SUFFIXES:
        multiplier = AMOUNT_SUFFIXES[cleaned[-1]]
        cleaned = cleaned[:-1]
    try:
        value = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return value * multiplier


def _clean_address(raw: str) -> str:
    value = raw.strip()
    return value if is_base58_address(value) else value.lower()


@dataclass(frozen=True)
class IntentPattern:
    regex: re.Pattern
    extract: Extractor
    confidence: float = CANONICAL


def _p(pattern: str, extract: Extractor, confidence: float = CANONICAL) -> IntentPattern:
    return IntentPattern(re.compile(pattern, re.IGNORECASE), extract, confidence)


class IntentParser:
    """Maps one clause of free text to a typed intent.

    Categories are scanned in declaration order and, inside a category,
    patterns in declaration order. The first regex that matches and whose
    extractor does not raise decides the result.
    """

    def __init__(
        self,
        resolver: EntityResolver,
        *,
        default_slippage_bps: int = 50,
        pumpfun_slippage_bps: int = 100,
        pumpfun_default_buy: Decimal = Decimal("0.1"),
        default_wallet: str | None = None,
        use_jito_by_default: bool = False,
    ) -> None:
        self.resolver = resolver
        self.default_slippage_bps = default_slippage_bps
        self.pumpfun_slippage_bps = pumpfun_slippage_bps
        self.pumpfun_default_buy = pumpfun_default_buy
        self.default_wallet = default_wallet
        self.use_jito_by_default = use_jito_by_default
        self.categories: tuple[tuple[IntentType, tuple[IntentPattern, ...]], ...] = self._build_categories()

    async def parse(self, text: str) -> ParseResult:
        cleaned = normalize_input(text)
        lowered = cleaned.lower()
        if not cleaned:
            return Unknown(input=text, suggestions=COMMAND_SUGGESTIONS)

        for intent_type, patterns in self.categories:
            for index, pattern in enumerate(patterns):
                match = pattern.regex.search(cleaned)
                if match is None:
                    continue
                try:
                    outcome = await pattern.extract(match, lowered, self.resolver)
                except ResolverError:
                    raise
                except Exception:  # noqa: BLE001
                    logger.debug(
                        "extractor_rejected_match",
                        extra={"event": "extractor_rejected_match", "intent": intent_type.value, "pattern": index},
                        exc_info=True,
                    )
                    continue
                if isinstance(outcome, TransactionIntent):
                    outcome = Success(intent=outcome, confidence=pattern.confidence, raw_input=text)
                elif isinstance(outcome, Success):
                    outcome = replace(outcome, raw_input=text)
                logger.debug(
                    "intent_matched",
                    extra={"event": "intent_matched", "intent": intent_type.value, "pattern": index, "kind": outcome.kind},
                )
                return outcome

        return Unknown(input=text, suggestions=COMMAND_SUGGESTIONS)

    def _build_categories(self) -> tuple[tuple[IntentType, tuple[IntentPattern, ...]], ...]:
        return (
            (
                IntentType.TRANSFER_SOL,
                (
                    _p(rf"(?:send|transfer|pay)\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}\s+(?:to\s+)?(?P<recipient>{ADDRESS})", self._transfer_sol),
                    _p(rf"(?:send|transfer|pay)\s+(?P<recipient>{ADDRESS})\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}", self._transfer_sol, VARIANT),
                    _p(rf"(?:send|transfer|pay)\s+(?P<amount>{AMOUNT})\s+to\s+(?P<recipient>{ADDRESS})", self._transfer_sol, VARIANT),
                ),
            ),
            (
                IntentType.NFT_TRANSFER,
                (
                    _p(rf"(?:send|transfer|gift)\s+(?:my\s+)?nft\s+(?P<nft>{BASE58})\s+(?:to\s+)?(?P<recipient>{ADDRESS})", self._nft_transfer),
                ),
            ),
            (
                IntentType.NFT_LIST,
                (
                    _p(rf"(?:list|sell)\s+(?:my\s+)?nft\s+(?P<nft>{BASE58})\s+(?:for|at)\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}?(?:\s+on\s+(?P<market>[a-z][a-z ]{{1,20}}))?", self._nft_list),
                ),
            ),
            (
                IntentType.TRANSFER_TOKEN,
                (
                    _p(rf"(?:send|transfer|pay)\s+(?P<amount>{AMOUNT})\s+(?P<token>{TOKEN})\s+(?:to\s+)?(?P<recipient>{ADDRESS})", self._transfer_token),
                ),
            ),
            (
                IntentType.SWAP_LIMIT_ORDER,
                (
                    _p(rf"(?:swap|exchange|convert|trade|sell)\s+(?P<amount>{AMOUNT})\s+(?P<input>{TOKEN})\s+(?:for|to|into)\s+(?P<output>{TOKEN})\s+(?:at|@)\s+(?:a\s+)?(?:price\s+(?:of\s+)?)?\$?(?P<price>{AMOUNT})", self._limit_order),
                    _p(rf"(?:swap|exchange|convert|trade|sell)\s+(?P<amount>{AMOUNT})\s+(?P<input>{TOKEN})\s+(?:for|to|into)\s+(?P<output>{TOKEN})\s+when\s+(?:the\s+)?price\s+(?:hits|reaches|is)\s+\$?(?P<price>{AMOUNT})", self._limit_order, VARIANT),
                ),
            ),
            (
                IntentType.SWAP,
                (
                    _p(rf"(?:jito|mev)[\s-]+(?:protected\s+)?(?:swap|exchange)\s+(?P<amount>{AMOUNT})\s+(?P<input>{TOKEN})\s+(?:for|to|into)\s+(?P<output>{TOKEN})", self._protected_swap),
                    _p(rf"(?:swap|exchange|convert|trade)\s+(?P<amount>{AMOUNT})\s+(?P<input>{TOKEN})\s+(?:for|to|into)\s+(?P<output>{TOKEN})", self._swap),
                    _p(rf"(?:buy|get)\s+(?P<amount>{AMOUNT})\s+(?P<output>{TOKEN})\s+(?:with|using)\s+(?P<input>{TOKEN})", self._swap_exact_out, VARIANT),
                    _p(rf"sell\s+(?P<amount>{AMOUNT})\s+(?P<input>{TOKEN})\s+for\s+(?P<output>{TOKEN})", self._swap),
                ),
            ),
            (
                IntentType.STAKE,
                (
                    _p(rf"\b(?:liquid\s+)?stake\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}?(?:\s+(?:with|on|to|via)\s+(?P<target>\S+))?", self._stake),
                ),
            ),
            (
                IntentType.UNSTAKE,
                (
                    _p(rf"(?:unstake|withdraw)\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}?(?:\s+from\s+(?P<protocol>[a-z]+))?", self._unstake),
                ),
            ),
            (
                IntentType.CLAIM_REWARDS,
                (_p(r"(?:claim|collect|harvest)\s+(?:my\s+)?(?:staking\s+)?rewards?", self._claim_rewards),),
            ),
            (
                IntentType.PUMPFUN_BUY,
                (
                    _p(rf"(?:buy|ape|purchase)\s+(?:into\s+)?(?:pumpfun|pump\.fun|pump)\s+(?:token\s+)?(?P<mint>{BASE58})(?:\s+(?:with|for)\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}?)?", self._pumpfun_buy),
                    _p(rf"(?:buy|ape)\s+(?P<amount>{AMOUNT})\s*{SOL_UNIT}?\s+(?:of|worth\s+of|into)\s+(?:pumpfun\s+|pump\s+)?(?:token\s+)?(?P<mint>{BASE58})", self._pumpfun_buy),
                ),
            ),
            (
                IntentType.PUMPFUN_SELL,
                (
                    _p(rf"(?:sell|dump)\s+(?:all\s+(?:my\s+)?)?(?:pumpfun|pump\.fun|pump)\s+(?:token\s+)?(?P<mint>{BASE58})(?:\s+(?P<amount>{AMOUNT}))?", self._pumpfun_sell),
                    _p(rf"(?:sell|dump)\s+(?P<amount>{AMOUNT})\s+(?:of\s+)?(?:pumpfun\s+|pump\s+)?(?:tokens?\s+)?(?P<mint>{BASE58})", self._pumpfun_sell),
                ),
            ),
            (
                IntentType.PUMPFUN_CREATE,
                (
                    _p(
                        r"(?:create|launch)\s+(?:a\s+)?(?:new\s+)?(?:pumpfun|pump\.fun|pump)\s+(?:(?:token|coin)\s+)?"
                        r"(?:named?|called)\s+[\"']?(?P<name>[^\"']+?)[\"']?\s+(?:with\s+)?(?:symbol|ticker)\s+[\"'$]?(?P<symbol>[a-z0-9]{1,10})[\"']?"
                        rf"(?:\s+(?:and\s+)?(?:with\s+)?(?:an?\s+)?(?:initial\s+)?buy(?:ing)?\s+(?:of\s+)?(?P<amount>{AMOUNT})\s*{SOL_UNIT}?)?",
                        self._pumpfun_create,
                        VARIANT,
                    ),
                ),
            ),
            (
                IntentType.JITO_TIP,
                (
                    _p(rf"(?:get|check|show|{WHAT})\s+(?:the\s+)?(?:current\s+)?jito\s+tips?(?:\s+floor)?", self._jito_tip),
                    _p(r"\bjito\s+tip\s+floor\b", self._jito_tip, VARIANT),
                ),
            ),
            (
                IntentType.GET_PRIORITY_FEE,
                (
                    _p(rf"(?:get|check|show|estimate|{WHAT})\s+(?:the\s+)?(?:current\s+)?priority\s+fees?(?:\s+estimates?)?(?:\s+(?:for\s+)?(?P<level>low|medium|high|very\s*high)(?:\s+priority)?)?", self._priority_fee),
                ),
            ),
            (
                IntentType.GET_BALANCE,
                (
                    _p(rf"(?:check|get|show|{WHAT})\s+(?:my\s+|the\s+)?(?:sol\s+)?balance(?:\s+(?:of|for|in)\s+(?P<address>{ADDRESS}))?", self._get_balance),
                    _p(rf"how\s+much\s+{SOL_UNIT}\s+(?:do\s+i\s+have|(?:is\s+)?in\s+(?P<address>{ADDRESS}))", self._get_balance, VARIANT),
                ),
            ),
            (
                IntentType.GET_TOKEN_BALANCE,
                (
                    _p(rf"(?:check|get|show|{WHAT})\s+(?:my\s+)?(?P<token>{TOKEN})\s+balance(?:\s+(?:of|for|in)\s+(?P<address>{ADDRESS}))?", self._get_token_balance),
                    _p(rf"how\s+much\s+(?P<token>{TOKEN})\s+(?:do\s+i\s+have|(?:is\s+)?in\s+(?P<address>{ADDRESS}))", self._get_token_balance, VARIANT),
                ),
            ),
            (
                IntentType.GET_DOMAINS,
                (
                    _p(rf"(?:get|show|list)\s+(?:all\s+)?(?:the\s+)?domains?\s+(?:owned\s+by|of|for)\s+(?P<owner>{ADDRESS})", self._get_domains),
                    _p(rf"what\s+domains?\s+(?:does|do)\s+(?P<owner>{ADDRESS})\s+(?:have|own)", self._get_domains, VARIANT),
                    _p(r"(?:get|show|list)\s+my\s+domains?", self._get_domains, VARIANT),
                ),
            ),
            (
                IntentType.GET_ASSETS,
                (
                    _p(rf"(?:get|show|list|{WHAT})\s+(?:my\s+|all\s+)?(?:nfts?|assets?|tokens?|holdings)(?:\s+(?:of|for|in)\s+(?P<address>{ADDRESS}))?", self._get_assets),
                    _p(rf"what\s+do\s+i\s+(?:have|own)(?:\s+in\s+(?P<address>{ADDRESS}))?", self._get_assets, VARIANT),
                ),
            ),
            (
                IntentType.RESOLVE_DOMAIN,
                (
                    _p(rf"(?:resolve|lookup|look\s+up|find)\s+(?:domain\s+)?(?P<domain>{DOMAIN})", self._resolve_domain),
                    _p(rf"(?:{WHAT}|who\s+is)\s+(?:the\s+)?(?:address\s+(?:of|for)\s+)?(?P<domain>{DOMAIN})", self._resolve_domain, VARIANT),
                ),
            ),
            (
                IntentType.REVERSE_LOOKUP,
                (
                    _p(rf"{WHAT}\s+(?:the\s+)?domain\s+(?:of|for)\s+(?P<address>{BASE58})", self._reverse_lookup),
                    _p(rf"(?:reverse\s+)?(?:lookup|look\s+up)\s+(?P<address>{BASE58})", self._reverse_lookup, VARIANT),
                ),
            ),
            (
                IntentType.ANALYZE_PRIVACY,
                (
                    _p(rf"(?:analyze|check|score)\s+(?:my\s+)?(?:wallet\s+)?privacy(?:\s+(?:of|for)\s+(?P<address>{ADDRESS}))?", self._analyze_privacy),
                    _p(rf"how\s+private\s+(?:is\s+|am\s+)(?:i\b|my\s+wallet|(?P<address>{ADDRESS}))", self._analyze_privacy, VARIANT),
                ),
            ),
            (
                IntentType.SUBSCRIBE_SLOT,
                (_p(r"(?:subscribe|watch|monitor)\s+(?:to\s+)?(?:new\s+)?slots?\b(?:\s+updates?)?", self._subscribe_slot),),
            ),
            (
                IntentType.SUBSCRIBE_ACCOUNT,
                (
                    _p(rf"(?:subscribe|watch|monitor)\s+(?:to\s+)?(?:account\s+)?(?P<address>{ADDRESS})", self._subscribe_account),
                ),
            ),
        )

    # Resolution helpers

    async def _resolve_recipient(self, raw: str) -> tuple[str | None, str | None]:
        """Returns (address, conflicting_domain_address).

        A bare name is looked up both in the address book and as a `.sol`
        domain; when both answer with different wallets the second value is set.
        """
        value = raw.strip()
        if is_domain(value) or is_base58_address(value) or value.startswith("@"):
            return await self.resolver.resolve_address(value), None
        alias = await self.resolver.lookup_alias(value)
        domain = await self.resolver.resolve_domain(f"{value}.sol")
        if alias and domain and alias != domain:
            return alias, domain
        if alias or domain:
            return alias or domain, None
        return await self.resolver.resolve_address(value), None

    async def _token(self, raw: str) -> TokenInfo | None:
        return await self.resolver.resolve_token(normalize_token_symbol(raw))

    async def _query_address(
        self,
        match: re.Match,
        group: str,
        intent_type: IntentType,
        build: Callable[[str, str], TransactionIntent],
        partial: dict[str, str] | None = None,
        prompt: str = "Which wallet do you want to check?",
    ) -> Outcome:
        captured = match.groupdict().get(group)
        address = _clean_address(captured) if captured else self.default_wallet
        partial = dict(partial or {})
        if not address:
            return NeedsInfo(intent_type, ("wallet address",), partial, prompt)
        resolved = await self.resolver.resolve_address(address)
        if resolved is None:
            partial[group] = address
            return NeedsInfo(intent_type, ("valid address",), partial, f"Could not resolve '{address}'.")
        return build(address, resolved)

    # Extractors

    async def _transfer_sol(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        amount = parse_amount(match.group("amount"))
        recipient = _clean_address(match.group("recipient"))
        resolved, conflict = await self._resolve_recipient(recipient)
        if resolved is None:
            return NeedsInfo(
                IntentType.TRANSFER_SOL,
                ("recipient address",),
                {"amount": fmt_decimal(amount)},
                f"Could not resolve '{recipient}'. Is it a valid .sol/.skr domain or wallet address?",
            )
        intent = TransferSol(amount, recipient, resolved)
        if conflict:
            return Ambiguous(intent, (TransferSol(amount, f"{recipient}.sol", conflict),), AMBIGUOUS)
        return intent

    async def _transfer_token(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        amount = parse_amount(match.group("amount"))
        symbol = normalize_token_symbol(match.group("token"))
        recipient = _clean_address(match.group("recipient"))
        info = await self._token(symbol)
        if info is None:
            return NeedsInfo(
                IntentType.TRANSFER_TOKEN,
                ("valid token",),
                {"amount": fmt_decimal(amount), "recipient": recipient},
                f"Token '{symbol}' not recognized. Try using the mint address or a common symbol.",
            )
        resolved, conflict = await self._resolve_recipient(recipient)
        if resolved is None:
            return NeedsInfo(
                IntentType.TRANSFER_TOKEN,
                ("recipient address",),
                {"amount": fmt_decimal(amount), "token": info.symbol},
                f"Could not resolve '{recipient}'.",
            )
        intent = TransferToken(amount, info.symbol, recipient, info.mint, resolved)
        if conflict:
            alternative = TransferToken(amount, info.symbol, f"{recipient}.sol", info.mint, conflict)
            return Ambiguous(intent, (alternative,), AMBIGUOUS)
        return intent

    async def _nft_transfer(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        nft = match.group("nft")
        recipient = _clean_address(match.group("recipient"))
        resolved, conflict = await self._resolve_recipient(recipient)
        if resolved is None:
            return NeedsInfo(IntentType.NFT_TRANSFER, ("recipient address",), {"nft": nft}, f"Could not resolve '{recipient}'.")
        intent = NftTransfer(nft, recipient, resolved)
        if conflict:
            return Ambiguous(intent, (NftTransfer(nft, f"{recipient}.sol", conflict),), AMBIGUOUS)
        return intent

    async def _nft_list(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        price = parse_amount(match.group("amount"))
        market = (match.group("market") or "").strip()
        if market:
            return NftList(match.group("nft"), price, market.title().replace(" ", ""))
        return NftList(match.group("nft"), price)

    async def _resolve_pair(self, match: re.Match, intent_type: IntentType) -> tuple[TokenInfo, TokenInfo] | NeedsInfo:
        amount = fmt_decimal(parse_amount(match.group("amount")))
        input_symbol = normalize_token_symbol(match.group("input"))
        output_symbol = normalize_token_symbol(match.group("output"))
        input_info = await self._token(input_symbol)
        if input_info is None:
            return NeedsInfo(
                intent_type,
                ("input token",),
                {"amount": amount, "output_token": output_symbol},
                f"Token '{input_symbol}' not recognized.",
            )
        output_info = await self._token(output_symbol)
        if output_info is None:
            return NeedsInfo(
                intent_type,
                ("output token",),
                {"amount": amount, "input_token": input_info.symbol},
                f"Token '{output_symbol}' not recognized.",
            )
        return input_info, output_info

    def _wants_jito(self, text: str) -> bool:
        return self.use_jito_by_default or bool(re.search(r"\b(?:jito|mev|protection|protected)\b", text))

    async def _swap(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        pair = await self._resolve_pair(match, IntentType.SWAP)
        if isinstance(pair, NeedsInfo):
            return pair
        source, target = pair
        return Swap(
            input_amount=parse_amount(match.group("amount")),
            input_token=source.symbol,
            output_token=target.symbol,
            input_mint=source.mint,
            output_mint=target.mint,
            slippage_bps=self.default_slippage_bps,
            use_jito=self._wants_jito(text),
        )

    async def _protected_swap(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        outcome = await self._swap(match, text, resolver)
        if isinstance(outcome, Swap):
            return replace(outcome, use_jito=True)
        return outcome

    async def _swap_exact_out(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        pair = await self._resolve_pair(match, IntentType.SWAP_EXACT_OUT)
        if isinstance(pair, NeedsInfo):
            return pair
        source, target = pair
        return SwapExactOut(
            output_amount=parse_amount(match.group("amount")),
            output_token=target.symbol,
            input_token=source.symbol,
            output_mint=target.mint,
            input_mint=source.mint,
            slippage_bps=self.default_slippage_bps,
        )

    async def _limit_order(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        pair = await self._resolve_pair(match, IntentType.SWAP_LIMIT_ORDER)
        if isinstance(pair, NeedsInfo):
            return pair
        source, target = pair
        return SwapLimitOrder(
            input_amount=parse_amount(match.group("amount")),
            input_token=source.symbol,
            output_token=target.symbol,
            target_price=parse_amount(match.group("price")),
        )

    async def _stake(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        amount = parse_amount(match.group("amount"))
        target = match.group("target")
        protocol = find_staking_protocol(target)
        validator = target if target and protocol is None and is_base58_address(target) else None
        return Stake(amount, validator=validator, protocol=protocol)

    async def _unstake(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return Unstake(parse_amount(match.group("amount")), find_staking_protocol(match.group("protocol")))

    async def _claim_rewards(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return ClaimRewards()

    async def _pumpfun_buy(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        raw_amount = match.group("amount")
        amount = parse_amount(raw_amount) if raw_amount else self.pumpfun_default_buy
        return PumpfunBuy(match.group("mint"), amount, self.pumpfun_slippage_bps)

    async def _pumpfun_sell(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        raw_amount = match.group("amount")
        amount = parse_amount(raw_amount) if raw_amount else Decimal(0)
        return PumpfunSell(match.group("mint"), amount, self.pumpfun_slippage_bps)

    async def _pumpfun_create(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        name = match.group("name").strip()
        symbol = match.group("symbol").upper()
        raw_amount = match.group("amount")
        initial = parse_amount(raw_amount) if raw_amount else None
        if not name:
            return NeedsInfo(IntentType.PUMPFUN_CREATE, ("token name",), {"symbol": symbol}, "What should the token be called?")
        return PumpfunCreate(name, symbol, f"{name} ({symbol})", initial)

    async def _jito_tip(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return JitoTip()

    async def _priority_fee(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        level = match.group("level")
        return PriorityFee(level.replace(" ", "") if level else None)

    async def _get_balance(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return await self._query_address(match, "address", IntentType.GET_BALANCE, GetBalance)

    async def _get_token_balance(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        symbol = normalize_token_symbol(match.group("token"))
        info = await self._token(symbol)
        if info is None:
            return NeedsInfo(IntentType.GET_TOKEN_BALANCE, ("valid token",), {}, f"Token '{symbol}' not recognized.")
        return await self._query_address(
            match,
            "address",
            IntentType.GET_TOKEN_BALANCE,
            lambda address, resolved: GetTokenBalance(address, info.symbol, resolved),
            {"token": info.symbol},
        )

    async def _get_domains(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return await self._query_address(
            match, "owner", IntentType.GET_DOMAINS, GetDomains, prompt="Whose domains do you want to list?"
        )

    async def _get_assets(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return await self._query_address(match, "address", IntentType.GET_ASSETS, GetAssets)

    async def _resolve_domain(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return ResolveDomain(match.group("domain").lower())

    async def _reverse_lookup(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return ReverseLookup(match.group("address"))

    async def _analyze_privacy(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return await self._query_address(
            match,
            "address",
            IntentType.ANALYZE_PRIVACY,
            AnalyzePrivacy,
            prompt="Which wallet's privacy do you want to analyze?",
        )

    async def _subscribe_slot(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return SubscribeSlot()

    async def _subscribe_account(self, match: re.Match, text: str, resolver: EntityResolver) -> Outcome:
        return await self._query_address(match, "address", IntentType.SUBSCRIBE_ACCOUNT, SubscribeAccount)
