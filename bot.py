"""
Главный файл Telegram-бота уведомлений о местах в шаттлах
"""
import asyncio
import logging
import signal
import ssl
import sys

from aiogram import Bot, Dispatcher
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web

from config import settings
from database.database import init_db
from handlers import commands
from handlers.commands import CommandProcessor
from services.notifier import Notifier, escape_fragment
from services.poller import RoutePoller
from services.runtime import Runtime
from services.schedule_store import ScheduleStore
from services.shuttle_client import ShuttleClient
from utils.errors import SessionExpired
from utils.route_parser import Destinations
from utils.scheduler import RouteLifecycleManager

# Настройка логирования
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def start_webhook(bot: Bot, dp: Dispatcher) -> web.AppRunner:
    """Запуск приёма обновлений через webhook"""
    await bot.set_webhook(
        url=settings.WEBHOOK_URL,
        secret_token=settings.WEBHOOK_SECRET or None,
        allowed_updates=['message'],
        max_connections=100,
        drop_pending_updates=True
    )

    app = web.Application()
    SimpleRequestHandler(
        dispatcher=dp,
        bot=bot,
        secret_token=settings.WEBHOOK_SECRET or None
    ).register(app, path=settings.WEBHOOK_PATH)
    setup_application(app, dp, bot=bot)

    ssl_context = None
    if settings.SSL_CERTIFICATE and settings.SSL_PRIVATE_KEY:
        ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        ssl_context.load_cert_chain(settings.SSL_CERTIFICATE, settings.SSL_PRIVATE_KEY)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.WEBHOOK_HOST, settings.WEBHOOK_PORT, ssl_context=ssl_context)
    await site.start()
    logger.info(f"Webhook запущен на {settings.WEBHOOK_HOST}:{settings.WEBHOOK_PORT}{settings.WEBHOOK_PATH}")
    return runner


async def main() -> int:
    """Основная функция запуска бота"""
    logger.info("Запуск бота...")

    # Инициализация БД
    init_db()
    logger.info("База данных инициализирована")

    destinations = Destinations.load(settings.DESTINATIONS_PATH)
    client = ShuttleClient(destinations)
    bot = Bot(token=settings.BOT_TOKEN)

    store = ScheduleStore()
    notifier = Notifier(bot)
    runtime = Runtime()
    poller = RoutePoller(client)
    lifecycle = RouteLifecycleManager(poller, store, notifier, runtime)
    processor = CommandProcessor(notifier, lifecycle, store, destinations)

    # Сервисы передаются в обработчики по имени параметра
    dp = Dispatcher(processor=processor, runtime=runtime)
    dp.include_router(commands.router)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runtime.stop)
        except NotImplementedError:
            logger.warning(f"Обработчик сигнала {sig.name} не поддерживается")

    runner = None
    polling = None
    try:
        await client.confirm_access()
        await notifier.notify_all("*Service has started!*")
        await lifecycle.startup()

        if settings.USE_WEBHOOK:
            runner = await start_webhook(bot, dp)
        else:
            await bot.delete_webhook(drop_pending_updates=True)
            polling = asyncio.create_task(
                dp.start_polling(bot, allowed_updates=['message'], handle_signals=False)
            )
        logger.info("Бот успешно запущен")

        waiters = {asyncio.create_task(runtime.wait())}
        if polling is not None:
            waiters.add(polling)
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            if task is not polling:
                task.cancel()
        if polling is not None and polling in done and polling.exception() is not None:
            runtime.fail(polling.exception())
    except SessionExpired as e:
        logger.critical(f"Сессия источника расписаний недействительна: {e}")
        runtime.fail(e)
    except Exception as e:
        logger.error(f"Критическая ошибка: {e}", exc_info=True)
        runtime.fail(e)
    finally:
        await shutdown(bot, client, lifecycle, notifier, runtime, runner, polling)

    return runtime.exit_code


async def shutdown(bot: Bot, client: ShuttleClient,
                   lifecycle: RouteLifecycleManager, notifier: Notifier, runtime: Runtime,
                   runner, polling):
    """Штатная остановка: планировщик, уведомления, соединения"""
    logger.info("Остановка бота...")
    runtime.stop()

    if polling is not None and not polling.done():
        polling.cancel()
        await asyncio.gather(polling, return_exceptions=True)
    await lifecycle.shutdown()

    if runtime.session_expired:
        await notifier.notify_all("Lost authorization for the uber session")
        await notifier.notify_all(escape_fragment(runtime.cause))
    if runtime.cause is None or runtime.session_expired:
        await notifier.notify_all("*Service has been shut down!*")
    else:
        await notifier.notify_all("*Service has crashed!*")

    if runner is not None:
        await runner.cleanup()
    if settings.DELETE_WEBHOOK:
        await bot.delete_webhook()
    await client.close()
    await bot.session.close()
    logger.info("Бот остановлен")


if __name__ == '__main__':
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Бот остановлен пользователем")
