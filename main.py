import asyncio
import logging
import signal

from dotenv import load_dotenv

from beta.assistant import Assistant
from beta.config import Settings
from beta.notifications import RoutingDirectory, RoutingDispatcher
from transports import discord_bot, gateway, telegram_bot
from transports.discord_bot import DiscordTransport, run_discord_bot
from transports.gateway import GatewayClient, GatewayDirectory, GatewayDispatcher
from transports.telegram_bot import TelegramTransport

log = logging.getLogger(__name__)


async def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s :: %(message)s")

    settings = Settings.load()
    if not (settings.telegram_token or settings.discord_token or settings.gateway_url):
        raise SystemExit("Missing TELEGRAM_TOKEN, DISCORD_TOKEN or GATEWAY_URL.")

    directory = RoutingDirectory()
    dispatcher = RoutingDispatcher()
    assistant = Assistant(settings, directory=directory)

    tasks = []
    telegram_transport = None
    if settings.telegram_token:
        telegram_transport = TelegramTransport(assistant, settings.telegram_token)
        directory.register(telegram_bot.PLATFORM, telegram_transport.directory)
        dispatcher.register(telegram_bot.PLATFORM, telegram_transport.dispatcher)
        tasks.append(asyncio.create_task(telegram_transport.start()))

    discord_task = None
    if settings.discord_token:
        discord_transport = DiscordTransport(assistant, guild_id=settings.discord_guild_id)
        directory.register(discord_bot.PLATFORM, discord_transport.directory)
        dispatcher.register(discord_bot.PLATFORM, discord_transport.dispatcher)
        discord_task = asyncio.create_task(run_discord_bot(discord_transport, settings.discord_token))

    if settings.gateway_url:
        client = GatewayClient(settings.gateway_url, api_key=settings.gateway_api_key)
        directory.register(gateway.PLATFORM, GatewayDirectory(client))
        dispatcher.register(gateway.PLATFORM, GatewayDispatcher(client))

    assistant.start_scheduler(dispatcher)
    log.info("loaded %d pending reminders", len(assistant.reminders))

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    await stop_event.wait()

    await assistant.close()

    if telegram_transport is not None:
        await telegram_transport.stop()

    if discord_task is not None:
        discord_task.cancel()
        try:
            await discord_task
        except asyncio.CancelledError:
            pass

    for task in tasks:
        await task


if __name__ == "__main__":
    asyncio.run(main())
