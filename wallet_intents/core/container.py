from __future__ import annotations

from dataclasses import dataclass

import httpx

from wallet_intents.adapters.resolver import EntityResolver
from wallet_intents.adapters.storage import PreferenceStore
from wallet_intents.core.chain import ChainParser
from wallet_intents.core.config import Settings
from wallet_intents.core.nlu import IntentParser
from wallet_intents.services.conversation import ConversationEngine


@dataclass
class ServiceHub:
    settings: Settings
    resolver: EntityResolver
    intent_parser: IntentParser
    chain_parser: ChainParser
    engine: ConversationEngine
    store: PreferenceStore | None
    http: httpx.AsyncClient | None = None
