from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher

from splitpay.config import get_settings
from splitpay.db.repo import Database, SplitPayRepository, set_global_repository
from splitpay.handlers import basic_router, expenses_router, groups_router
from splitpay.logging import configure_logging, get_logger
from splitpay.scheduler import setup_scheduler


async def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    bot = Bot(token=settings.bot_token)
    dp = Dispatcher()
    db = Database(settings.database_url)
    await db.connect()
    repo = SplitPayRepository(db)

    dp.include_router(basic_router)
    dp.include_router(groups_router)
    dp.include_router(expenses_router)

    set_global_repository(repo)

    scheduler = await setup_scheduler(bot, repo)

    log = get_logger(__name__)
    log.info("bot.start")
    try:
        await dp.start_polling(bot)
    finally:
        scheduler.shutdown(wait=False)
        await db.close()
        await bot.session.close()
        log.info("bot.stop")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
