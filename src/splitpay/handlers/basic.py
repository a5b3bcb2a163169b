from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from splitpay.db.repo import get_global_repository

basic_router = Router()

HELP_TEXT = (
    "SplitPay keeps track of shared expenses and tells everyone who pays whom.\n\n"
    "/newgroup <name> - create a group\n"
    "/join <group_id> - join a group\n"
    "/groups - your groups\n"
    "/addexpense <group_id> | <title> | <amount> [CUR] - split an expense equally\n"
    "/balances <group_id> - who owes and who is owed\n"
    "/plan <group_id> - fewest transfers to settle up\n"
    "/wallet <address> - set the address you get paid to"
)


@basic_router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    repo = get_global_repository()
    await repo.ensure_user(user.id, user.full_name)
    await message.answer(f"Hi, {user.first_name}!\n\n{HELP_TEXT}")


@basic_router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@basic_router.message(Command("wallet"))
async def cmd_wallet(message: Message) -> None:
    user = message.from_user
    if not user or not message.text:
        return
    parts = message.text.split()
    if len(parts) < 2:
        await message.answer("Usage: /wallet <address>")
        return

    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.full_name)
    await repo.set_wallet_address(user_id, parts[1])
    await message.answer("Wallet address saved.")
