from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
BASE58_RE = re.compile(rf"^[{BASE58_ALPHABET}]{{32,44}}$")
DOMAIN_SUFFIXES = (".sol", ".skr")

STAKING_PROTOCOLS = ("marinade", "jito", "blaze", "lido", "socean")


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    name: str
    mint: str
    decimals: int
    logo_uri: str | None = None


class TokenTable:
    """Read-only symbol/mint lookup built once and shared."""

    def __init__(self, tokens: Iterable[TokenInfo]) -> None:
        items = tuple(tokens)
        self._tokens = items
        self._by_symbol: Mapping[str, TokenInfo] = MappingProxyType({t.symbol.upper(): t for t in items})
        self._by_mint: Mapping[str, TokenInfo] = MappingProxyType({t.mint: t for t in items})

    def __iter__(self):
        return iter(self._tokens)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and symbol.upper() in self._by_symbol

    @property
    def by_symbol(self) -> Mapping[str, TokenInfo]:
        return self._by_symbol

    def find(self, symbol: str) -> TokenInfo | None:
        return self._by_symbol.get(normalize_token_symbol(symbol))

    def find_by_mint(self, mint: str) -> TokenInfo | None:
        return self._by_mint.get(mint)


WELL_KNOWN_TOKENS = TokenTable(
    [
        TokenInfo("SOL", "Solana", "So11111111111111111111111111111111111111112", 9),
        TokenInfo("USDC", "USD Coin", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
        TokenInfo("USDT", "Tether USD", "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
        TokenInfo("BONK", "Bonk", "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", 5),
        TokenInfo("JUP", "Jupiter", "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN", 6),
        TokenInfo("RAY", "Raydium", "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R", 6),
        TokenInfo("ORCA", "Orca", "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE", 6),
        TokenInfo("mSOL", "Marinade staked SOL", "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So", 9),
        TokenInfo("JitoSOL", "Jito Staked SOL", "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", 9),
        TokenInfo("PYTH", "Pyth Network", "HZ1JovNiVvGrGNiiYvEozEVgZ58xaU3RKwX8eACQBCt3", 6),
        TokenInfo("WIF", "dogwifhat", "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm", 6),
        TokenInfo("RENDER", "Render Token", "rndrizKT3MK1iimdxRdWabcF7Zg7AR5T4nud4EkHBof", 8),
        TokenInfo("HNT", "Helium", "hntyVP6YFm1Hg25TN9WGLqM12b8TQmcknKrdu1oxWux", 8),
        TokenInfo("MOBILE", "Helium Mobile", "mb1eu7TzEc71KxDpsmsKoucSSuuoGLv1drys1oP2jh6", 6),
        TokenInfo("IOT", "Helium IOT", "iotEVVZLEywoTn1QdwNPddxPWszn3zFhEot3MfL9fns", 6),
        TokenInfo("FARTCOIN", "Fartcoin", "9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump", 6),
        TokenInfo("AI16Z", "ai16z", "HeLp6NuQkmYB4pYWo2zYs22mESHXPQYzXbB8n4V98jwC", 9),
        TokenInfo("GOAT", "Goatseus Maximus", "CzLSujWBLFsSjncfkh59rUFqvafWcY5tzedWJSuypump", 6),
    ]
)


def normalize_token_symbol(raw: str) -> str:
    token = str(raw or "").strip().upper().lstrip("$")
    aliases = {
        "SOLANA": "SOL",
        "WSOL": "SOL",
        "JUPITER": "JUP",
        "DOGWIFHAT": "WIF",
    }
    return aliases.get(token, token)


def find_staking_protocol(name: str | None) -> str | None:
    if not name:
        return None
    lowered = name.strip().lower()
    for protocol in STAKING_PROTOCOLS:
        if protocol == lowered:
            return protocol
    return None


def is_base58_address(value: str) -> bool:
    return bool(BASE58_RE.match(value or ""))


def is_domain(value: str) -> bool:
    return (value or "").lower().endswith(DOMAIN_SUFFIXES)
