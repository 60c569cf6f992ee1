from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx

from wallet_intents.adapters.resolver import EntityResolver, HttpEntityResolver, ResolverError, StaticEntityResolver
from wallet_intents.adapters.storage import JsonFilePreferenceStore
from wallet_intents.core.chain import CancelSubscription, ChainParser, Recurring, Scheduled
from wallet_intents.core.config import Settings, get_settings
from wallet_intents.core.container import ServiceHub
from wallet_intents.core.logging import setup_logging
from wallet_intents.core.nlu import IntentParser
from wallet_intents.services.conversation import ConversationEngine, TurnResult
from wallet_intents.workers.scheduler import IntentScheduler

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q"}


def build_hub(
    settings: Settings,
    resolver: EntityResolver | None = None,
    http: httpx.AsyncClient | None = None,
) -> ServiceHub:
    if resolver is None:
        if settings.use_remote_resolver:
            http = http or httpx.AsyncClient(timeout=settings.resolver_timeout_sec)
            resolver = HttpEntityResolver(
                http,
                address_book=settings.address_book_map(),
                sns_proxy_url=settings.sns_proxy_url,
                skr_api_url=settings.skr_api_url,
                jupiter_token_list_url=settings.jupiter_token_list_url,
            )
        else:
            resolver = StaticEntityResolver(settings.address_book_map(), settings.known_domains_map())

    zone = ZoneInfo(settings.timezone)

    def clock() -> datetime:
        return datetime.now(zone)

    intent_parser = IntentParser(
        resolver,
        default_slippage_bps=settings.default_slippage_bps,
        pumpfun_slippage_bps=settings.pumpfun_slippage_bps,
        pumpfun_default_buy=settings.pumpfun_default_buy_sol,
        default_wallet=settings.default_wallet_or_none(),
        use_jito_by_default=settings.use_jito_by_default,
    )
    chain_parser = ChainParser(intent_parser, clock=clock)
    store = JsonFilePreferenceStore(settings.preferences_path) if settings.persist_preferences else None
    engine = ConversationEngine(
        chain_parser,
        resolver,
        store=store,
        max_undo=settings.max_undo_size,
        max_history=settings.max_history_size,
        clock=clock,
    )
    return ServiceHub(
        settings=settings,
        resolver=resolver,
        intent_parser=intent_parser,
        chain_parser=chain_parser,
        engine=engine,
        store=store,
        http=http,
    )


def render(turn: TurnResult) -> str:
    lines = [turn.result.summary()]
    if turn.resolved_input != turn.input:
        lines.append(f"  (read as: {turn.resolved_input})")
    if turn.result.ok and turn.meta is None:
        lines.append("  Say 'confirm' to execute, 'make it ...' to change it, or 'undo'.")
    for suggestion in turn.suggestions:
        lines.append(f"  try: {suggestion.text}")
    return "\n".join(lines)


def dispatch(turn: TurnResult, scheduler: IntentScheduler) -> str | None:
    """Hands confirmed timed results to the scheduler. Returns a status line."""
    if not turn.requires_execution:
        return None
    result = turn.result
    if isinstance(result, (Scheduled, Recurring)):
        return f"Scheduled as {scheduler.schedule(result)}"
    if isinstance(result, CancelSubscription):
        return f"Cancelled {scheduler.cancel(result)} job(s)"
    logger.info("intent_ready", extra={"event": "intent_ready", "kind": result.kind})
    return "Ready to execute."


async def run_console(settings: Settings) -> None:
    hub = build_hub(settings)
    scheduler = IntentScheduler(timezone=settings.timezone)
    scheduler.start()
    await hub.engine.load()
    print("wallet-intents console. Type 'help' for commands, 'exit' to leave.")
    try:
        while True:
            try:
                line = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if line.strip().lower() in EXIT_COMMANDS:
                break
            if not line.strip():
                continue
            try:
                turn = await hub.engine.process(line)
            except ResolverError as exc:
                print(f"Lookup failed: {exc}")
                continue
            print(render(turn))
            status = dispatch(turn, scheduler)
            if status:
                print(status)
    finally:
        scheduler.stop()
        if hub.http is not None:
            await hub.http.aclose()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    asyncio.run(run_console(settings))


if __name__ == "__main__":
    main()
