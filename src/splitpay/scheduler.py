from __future__ import annotations

from aiogram import Bot
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from splitpay.config import get_settings
from splitpay.db.repo import SplitPayRepository
from splitpay.logging import get_logger
from splitpay.services.balances import calculate_group_balances
from splitpay.services.settlement import compute_settlement_plan, transfers_for
from splitpay.services.summary import format_reminder


async def setup_scheduler(bot: Bot, repo: SplitPayRepository) -> AsyncIOScheduler:
    settings = get_settings()

    scheduler = AsyncIOScheduler(timezone=settings.tz)
    if settings.reminder_interval_hours > 0:
        scheduler.add_job(
            _debt_reminder_job,
            IntervalTrigger(hours=settings.reminder_interval_hours),
            kwargs={"bot": bot, "repo": repo},
        )
    scheduler.start()
    return scheduler


async def _debt_reminder_job(bot: Bot, repo: SplitPayRepository) -> None:
    log = get_logger(__name__)
    currency = get_settings().currency

    for group_id in await repo.list_group_ids():
        group = await repo.get_group(group_id)
        if group is None:
            continue
        members = await repo.get_group_members(group_id)
        expenses = await repo.get_expenses_for_group(group_id)
        plan = compute_settlement_plan(calculate_group_balances(expenses, members))
        if not plan.transfers:
            continue

        for member in members:
            owed = transfers_for(plan, member.user_id)
            if not owed or not member.tg_id:
                continue
            log.info("reminder.send", group_id=group_id, user_id=member.user_id, transfers=len(owed))
            await bot.send_message(member.tg_id, format_reminder(group.name, owed, currency))
