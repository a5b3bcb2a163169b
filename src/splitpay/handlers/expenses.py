from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from splitpay.config import get_settings
from splitpay.db.repo import get_global_repository
from splitpay.logging import get_logger
from splitpay.services.authz import AuthorizationError, assert_group_member
from splitpay.services.expenses import split_amount
from splitpay.utils.money import format_amount
from splitpay.utils.parse import parse_amount, parse_group_id

expenses_router = Router()
log = get_logger(__name__)


@expenses_router.message(Command("addexpense"))
async def cmd_addexpense(message: Message) -> None:
    repo = get_global_repository()
    if not message.text:
        return
    parts = [part.strip() for part in message.text.replace("/addexpense", "", 1).split("|")]
    if len(parts) < 3:
        await message.answer("Usage: /addexpense <group_id> | <title> | <amount> [CUR]")
        return

    try:
        group_id = parse_group_id(parts[0])
        amount, currency = parse_amount(parts[2])
    except ValueError as exc:
        await message.answer(str(exc))
        return

    title = parts[1] or "Expense"
    currency = currency or get_settings().currency

    user = message.from_user
    if not user:
        return

    user_id = await repo.ensure_user(user.id, user.full_name)
    try:
        await assert_group_member(repo.db, user_id, group_id)
    except AuthorizationError as exc:
        await message.answer(str(exc))
        return

    members = await repo.get_group_members(group_id)
    shares = split_amount(amount, [m.user_id for m in members])
    expense = await repo.create_expense(
        group_id=group_id,
        paid_by=user_id,
        title=title,
        total_amount=amount,
        splits=shares,
        currency=currency,
    )
    log.info("expense.created", expense_id=expense.id, group_id=group_id, amount=str(amount))

    per_person = max(shares.values())
    await message.answer(
        f"Expense added: {expense.title} - {format_amount(amount, currency)}\n"
        f"Split between {len(shares)} people, up to {format_amount(per_person, currency)} each."
    )
