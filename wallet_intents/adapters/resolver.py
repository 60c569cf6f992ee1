from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx

from wallet_intents.adapters.tokens import (
    WELL_KNOWN_TOKENS,
    TokenInfo,
    TokenTable,
    is_base58_address,
    is_domain,
    normalize_token_symbol,
)

logger = logging.getLogger(__name__)


class ResolverError(RuntimeError):
    """A resolver backend could not be reached."""


class EntityResolver(Protocol):
    async def resolve_domain(self, name: str) -> str | None: ...

    async def reverse_lookup(self, address: str) -> str | None: ...

    async def get_domains(self, owner: str) -> list[str]: ...

    async def resolve_token(self, symbol: str) -> TokenInfo | None: ...

    def is_known_token(self, symbol: str) -> bool: ...

    async def resolve_address(self, freeform: str) -> str | None: ...

    async def lookup_alias(self, alias: str) -> str | None: ...


class BaseEntityResolver:
    """Address-book handling shared by the concrete resolvers."""

    def __init__(self, address_book: Mapping[str, str] | None = None, tokens: TokenTable = WELL_KNOWN_TOKENS) -> None:
        self.address_book = {k.strip().lower().lstrip("@"): v for k, v in (address_book or {}).items()}
        self.tokens = tokens

    async def resolve_domain(self, name: str) -> str | None:
        raise NotImplementedError

    async def lookup_alias(self, alias: str) -> str | None:
        return self.address_book.get(alias.strip().lower().lstrip("@"))

    async def resolve_address(self, freeform: str) -> str | None:
        value = freeform.strip()
        if not value:
            return None
        if is_base58_address(value):
            return value
        alias = await self.lookup_alias(value)
        if alias:
            return alias
        if value.startswith("@"):
            return None
        if is_domain(value):
            return await self.resolve_domain(value)
        if "." not in value:
            return await self.resolve_domain(f"{value}.sol")
        return None


class StaticEntityResolver(BaseEntityResolver):
    """Offline resolver backed by an address book, a domain map and the token table."""

    def __init__(
        self,
        address_book: Mapping[str, str] | None = None,
        domains: Mapping[str, str] | None = None,
        tokens: TokenTable = WELL_KNOWN_TOKENS,
    ) -> None:
        super().__init__(address_book, tokens)
        self.domains = {k.strip().lower(): v for k, v in (domains or {}).items()}

    async def resolve_domain(self, name: str) -> str | None:
        domain = name.strip().lower()
        if not is_domain(domain):
            domain = f"{domain}.sol"
        return self.domains.get(domain)

    async def reverse_lookup(self, address: str) -> str | None:
        owned = await self.get_domains(address)
        return owned[0] if owned else None

    async def get_domains(self, owner: str) -> list[str]:
        return sorted(domain for domain, address in self.domains.items() if address == owner)

    async def resolve_token(self, symbol: str) -> TokenInfo | None:
        return self.tokens.find(symbol)

    def is_known_token(self, symbol: str) -> bool:
        return normalize_token_symbol(symbol) in self.tokens


class HttpEntityResolver(BaseEntityResolver):
    """Resolver backed by the SNS proxy, the SKR API and the Jupiter token list.

    Non-2xx answers are treated as "not found". Transport failures raise
    ``ResolverError`` so callers can tell an outage from an unknown name.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        address_book: Mapping[str, str] | None = None,
        tokens: TokenTable = WELL_KNOWN_TOKENS,
        sns_proxy_url: str = "https://sns-sdk-proxy.bonfida.workers.dev",
        skr_api_url: str = "https://api.skr.domains/v1",
        jupiter_token_list_url: str = "https://token.jup.ag/strict",
    ) -> None:
        super().__init__(address_book, tokens)
        self.http = http
        self.sns_proxy_url = sns_proxy_url.rstrip("/")
        self.skr_api_url = skr_api_url.rstrip("/")
        self.jupiter_token_list_url = jupiter_token_list_url
        self._domain_cache: dict[str, str] = {}
        self._reverse_cache: dict[str, str] = {}
        self._token_cache: dict[str, TokenInfo] = {}
        self._jupiter_tokens: list[dict] | None = None

    async def _get_json(self, url: str) -> Any | None:
        try:
            response = await self.http.get(url)
        except httpx.HTTPError as exc:
            logger.warning("resolver_request_failed", extra={"event": "resolver_error", "url": url, "error": str(exc)})
            raise ResolverError(f"request to {url} failed: {exc}") from exc
        if response.status_code != 200:
            logger.info(
                "resolver_not_found",
                extra={"event": "resolver_miss", "url": url, "status": response.status_code},
            )
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def resolve_domain(self, name: str) -> str | None:
        domain = name.strip().lower()
        if domain in self._domain_cache:
            return self._domain_cache[domain]

        if domain.endswith(".skr"):
            payload = await self._get_json(f"{self.skr_api_url}/resolve/{domain[:-4]}")
            address = payload.get("address") if isinstance(payload, dict) else None
        else:
            label = domain[:-4] if domain.endswith(".sol") else domain
            payload = await self._get_json(f"{self.sns_proxy_url}/resolve/{label}")
            address = None
            if isinstance(payload, dict) and payload.get("s", "ok") == "ok":
                address = payload.get("result")

        if not isinstance(address, str) or not is_base58_address(address):
            return None
        self._domain_cache[domain] = address
        return address

    async def reverse_lookup(self, address: str) -> str | None:
        if address in self._reverse_cache:
            return self._reverse_cache[address]
        payload = await self._get_json(f"{self.sns_proxy_url}/favorite-domain/{address}")
        if not isinstance(payload, dict):
            return None
        result = payload.get("result")
        if isinstance(result, dict):
            result = result.get("reverse")
        if not isinstance(result, str) or not result:
            return None
        domain = result if result.endswith(".sol") else f"{result}.sol"
        self._reverse_cache[address] = domain
        return domain

    async def get_domains(self, owner: str) -> list[str]:
        payload = await self._get_json(f"{self.sns_proxy_url}/domains/{owner}")
        if not isinstance(payload, dict):
            return []
        out: list[str] = []
        for item in payload.get("result") or []:
            name = item.get("domain") if isinstance(item, dict) else item
            if isinstance(name, str) and name:
                out.append(name if name.endswith(".sol") else f"{name}.sol")
        return out

    async def _jupiter_list(self) -> list[dict]:
        if self._jupiter_tokens is None:
            payload = await self._get_json(self.jupiter_token_list_url)
            self._jupiter_tokens = [row for row in payload or [] if isinstance(row, dict)]
        return self._jupiter_tokens

    async def resolve_token(self, symbol: str) -> TokenInfo | None:
        key = normalize_token_symbol(symbol)
        if key in self._token_cache:
            return self._token_cache[key]
        token = self.tokens.find(key)
        if token is None:
            for row in await self._jupiter_list():
                if str(row.get("symbol", "")).upper() != key:
                    continue
                mint = row.get("address")
                if not mint:
                    continue
                token = TokenInfo(
                    symbol=row.get("symbol") or key,
                    name=row.get("name") or key,
                    mint=mint,
                    decimals=int(row.get("decimals") or 9),
                    logo_uri=row.get("logoURI"),
                )
                break
        if token is not None:
            self._token_cache[key] = token
        return token

    def is_known_token(self, symbol: str) -> bool:
        key = normalize_token_symbol(symbol)
        return key in self.tokens or key in self._token_cache
