from decimal import Decimal
from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "wallet-intents"
    env: str = "dev"
    log_level: str = "INFO"
    timezone: str = Field(default="UTC", alias="WALLET_TIMEZONE")

    # Parser defaults
    default_slippage_bps: int = Field(default=50, alias="DEFAULT_SLIPPAGE_BPS")
    pumpfun_slippage_bps: int = Field(default=100, alias="PUMPFUN_SLIPPAGE_BPS")
    pumpfun_default_buy_sol: Decimal = Field(default=Decimal("0.1"), alias="PUMPFUN_DEFAULT_BUY_SOL")
    default_wallet: str = Field(default="", alias="DEFAULT_WALLET")
    use_jito_by_default: bool = Field(default=False, alias="USE_JITO_BY_DEFAULT")

    # Conversation memory
    max_undo_size: int = Field(default=20, alias="MAX_UNDO_SIZE")
    max_history_size: int = Field(default=100, alias="MAX_HISTORY_SIZE")
    persist_preferences: bool = Field(default=True, alias="PERSIST_PREFERENCES")
    preferences_path: str = Field(default=".wallet_intents/preferences.json", alias="PREFERENCES_PATH")

    # Entity resolution
    use_remote_resolver: bool = Field(default=False, alias="USE_REMOTE_RESOLVER")
    address_book: str = Field(default="", alias="ADDRESS_BOOK")
    known_domains: str = Field(default="", alias="KNOWN_DOMAINS")
    sns_proxy_url: str = "https://sns-sdk-proxy.bonfida.workers.dev"
    skr_api_url: str = "https://api.skr.domains/v1"
    jupiter_token_list_url: str = "https://token.jup.ag/strict"
    resolver_timeout_sec: float = Field(default=30.0, alias="RESOLVER_TIMEOUT_SEC")

    def _pairs(self, raw: str) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for item in raw.split(","):
            if ":" not in item:
                continue
            name, address = item.split(":", 1)
            name = name.strip().lower().lstrip("@")
            address = address.strip()
            if name and address:
                out[name] = address
        return out

    def address_book_map(self) -> Dict[str, str]:
        return self._pairs(self.address_book)

    def known_domains_map(self) -> Dict[str, str]:
        return self._pairs(self.known_domains)

    def default_wallet_or_none(self) -> str | None:
        return self.default_wallet.strip() or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
