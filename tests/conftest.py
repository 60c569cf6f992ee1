from __future__ import annotations

from datetime import datetime, timezone

import pytest

from wallet_intents.adapters.resolver import StaticEntityResolver
from wallet_intents.core.chain import ChainParser
from wallet_intents.core.nlu import IntentParser

ALICE = "9xQeWvG816bUx9EPfXfVn8A2fB7a4ri3W2h7sG2Tttz"
BOB = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
CAROL = "DRpbCBMxVnDK7maPM5tGv6MvB3v1sRMC86PZ8okm21hy"
OWNER = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"
NFT = "FdhKXYjCou2jQfgKWcNY7jb8F2DPLU1teTTTRfLBD2v"
PUMP_MINT = "9BB6NFEcjBCtnNLFko2FqVQBq8HHM13kCyYcdQbgpump"

# Friday 2024-05-10 12:00 UTC
FIXED_NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def resolver() -> StaticEntityResolver:
    return StaticEntityResolver(
        address_book={"bob": BOB, "a": ALICE, "b": CAROL, "@carol": CAROL},
        domains={"alice.sol": ALICE, "carol.skr": CAROL, "owner.sol": OWNER, "vault.sol": OWNER},
    )


@pytest.fixture
def parser(resolver: StaticEntityResolver) -> IntentParser:
    return IntentParser(resolver, default_wallet=OWNER)


@pytest.fixture
def chain(parser: IntentParser) -> ChainParser:
    return ChainParser(parser, clock=fixed_clock)
