from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from splitpay.config import get_settings
from splitpay.db.repo import SplitPayRepository, get_global_repository
from splitpay.services.authz import AuthorizationError, assert_group_member
from splitpay.services.balances import BalanceInput, calculate_group_balances
from splitpay.services.settlement import plan_settlement
from splitpay.services.summary import format_balances, format_plan
from splitpay.utils.parse import parse_group_id

groups_router = Router()


def _command_arg(text: str | None) -> str:
    if not text:
        return ""
    parts = text.split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


@groups_router.message(Command("newgroup"))
async def cmd_newgroup(message: Message) -> None:
    user = message.from_user
    name = _command_arg(message.text)
    if not user:
        return
    if not name:
        await message.answer("Usage: /newgroup <name>")
        return

    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.full_name)
    group = await repo.create_group(name, user_id)
    await message.answer(f"Group created: {group.name}\nInvite friends with /join {group.id}")


@groups_router.message(Command("join"))
async def cmd_join(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    try:
        group_id = parse_group_id(_command_arg(message.text))
    except ValueError as exc:
        await message.answer(str(exc))
        return

    repo = get_global_repository()
    group = await repo.get_group(group_id)
    if group is None:
        await message.answer("Group not found.")
        return

    user_id = await repo.ensure_user(user.id, user.full_name)
    await repo.add_member(group_id, user_id)
    await message.answer(f"You joined {group.name}.")


@groups_router.message(Command("groups"))
async def cmd_groups(message: Message) -> None:
    user = message.from_user
    if not user:
        return
    repo = get_global_repository()
    user_id = await repo.ensure_user(user.id, user.full_name)
    rows = await repo.list_user_groups(user_id)
    if not rows:
        await message.answer("You are not in any group yet. Create one with /newgroup <name>")
        return
    await message.answer("\n".join(f"{row['name']} - {row['id']}" for row in rows))


async def _load_group_balances(message: Message, repo: SplitPayRepository) -> tuple[str, list[BalanceInput]] | None:
    user = message.from_user
    if not user:
        return None
    try:
        group_id = parse_group_id(_command_arg(message.text))
    except ValueError as exc:
        await message.answer(str(exc))
        return None

    group = await repo.get_group(group_id)
    if group is None:
        await message.answer("Group not found.")
        return None

    user_id = await repo.ensure_user(user.id, user.full_name)
    try:
        await assert_group_member(repo.db, user_id, group_id)
    except AuthorizationError as exc:
        await message.answer(str(exc))
        return None

    expenses = await repo.get_expenses_for_group(group_id)
    members = await repo.get_group_members(group_id)
    return group.name, calculate_group_balances(expenses, members)


@groups_router.message(Command("balances"))
async def cmd_balances(message: Message) -> None:
    repo = get_global_repository()
    loaded = await _load_group_balances(message, repo)
    if loaded is None:
        return
    group_name, balances = loaded
    await message.answer(format_balances(group_name, balances, get_settings().currency))


@groups_router.message(Command("plan"))
async def cmd_plan(message: Message) -> None:
    repo = get_global_repository()
    loaded = await _load_group_balances(message, repo)
    if loaded is None:
        return
    group_name, balances = loaded
    await message.answer(format_plan(group_name, plan_settlement(balances), get_settings().currency))
