import asyncio

from core.currency import BASE_STABLE, SECONDARY_STABLE, YIELD_TOKEN
from services.action_resolver import ActionResolver
from services.intent_parser import RegexIntentParser
from services.market import StaticRateSource, StaticYieldSource
from services.memory_gateway import InMemoryChainGateway
from services.session import SessionRegistry

DEMO_SENDER = "0x1111111111111111111111111111111111111111"
DEMO_BOOK = {"alice": "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"}


async def main():
    gateway = InMemoryChainGateway(
        address_book=DEMO_BOOK,
        balances={
            (DEMO_SENDER, BASE_STABLE): "1000.50",
            (DEMO_SENDER, SECONDARY_STABLE): "850.25",
            (DEMO_SENDER, YIELD_TOKEN): "500.75",
        },
    )
    yield_source = StaticYieldSource()
    resolver = ActionResolver(gateway, StaticRateSource(), yield_source)
    registry = SessionRegistry(RegexIntentParser(), resolver, gateway, yield_source, poll_interval=0.1)
    session = registry.get_or_create("demo", DEMO_SENDER)

    for text in ["Check my balance", "Send $50 to Alice", "yes", "Convert 100 USDC to EURC", "cancel", "hello"]:
        reply = await session.handle_message(text)
        print(f"> {text}\n[{reply.type}] {reply.message}\n")
        if reply.type == "submitted":
            record = await session.orchestrator.wait_for_settlement()
            print(f"Settled: {record.status.value} ({record.confirmations} confirmations)")
            for notice in session.notices:
                print(notice)
            print()

    await registry.close_all()

if __name__ == "__main__":
    import sys
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
