from __future__ import annotations

import json
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Mapping, Optional

import asyncpg

from splitpay.db.models import ActivityType, Expense, ExpenseSplit, Group, Member, SettlementRecord
from splitpay.logging import get_logger, sql_logger


class Database:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._pool: asyncpg.Pool | None = None
        self._log = get_logger(__name__)

    async def connect(self) -> None:
        if self._pool is None:
            # asyncpg expects a plain postgresql:// scheme without "+asyncpg"
            dsn = self._dsn.replace("+asyncpg", "")
            self._pool = await asyncpg.create_pool(dsn)
            self._log.info("db.pool.created")

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._log.info("db.pool.closed")

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetch", query=query, args=args)
        return await self._pool.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchrow", query=query, args=args)
        return await self._pool.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.fetchval", query=query, args=args)
        return await self._pool.fetchval(query, *args)

    async def execute(self, query: str, *args: Any) -> str:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.execute", query=query, args=args)
        return await self._pool.execute(query, *args)

    async def executemany(self, command: str, args: Iterable[Iterable[Any]]) -> None:
        await self._ensure_pool()
        assert self._pool
        sql_logger.info("sql.executemany", query=command)
        await self._pool.executemany(command, args)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        await self._ensure_pool()
        assert self._pool
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                sql_logger.info("sql.transaction.begin")
                yield conn

    async def _ensure_pool(self) -> None:
        if self._pool is None:
            await self.connect()


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3"
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


def _member_from_row(row: Mapping[str, Any]) -> Member:
    return Member(
        user_id=str(row["user_id"]),
        display_name=row["display_name"],
        wallet_address=row["wallet_address"],
        tg_id=row["tg_id"],
    )


class SplitPayRepository:
    """Record store for groups, expenses and settlements.

    Satisfies both ``SettlementStore`` and ``AddressResolver`` used by the
    settlement executor.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    async def ensure_user(self, tg_id: int, display_name: Optional[str]) -> str:
        row = await self.db.fetchrow(
            """
            INSERT INTO users (tg_id, display_name)
            VALUES ($1, $2)
            ON CONFLICT (tg_id) DO UPDATE
                SET display_name = EXCLUDED.display_name
            RETURNING id
            """,
            tg_id,
            display_name,
        )
        assert row is not None
        return str(row["id"])

    async def set_wallet_address(self, user_id: str, wallet_address: str) -> None:
        await self.db.execute("UPDATE users SET wallet_address = $1 WHERE id = $2", wallet_address, user_id)

    async def resolve_recipient_address(self, user_id: str) -> Optional[str]:
        return await self.db.fetchval("SELECT wallet_address FROM users WHERE id = $1", user_id)

    async def create_group(self, name: str, created_by: str, description: Optional[str] = None) -> Group:
        row = await self.db.fetchrow(
            """
            INSERT INTO groups (name, description, created_by)
            VALUES ($1, $2, $3)
            RETURNING *
            """,
            name,
            description,
            created_by,
        )
        assert row is not None
        await self.add_member(str(row["id"]), created_by)
        return Group(
            id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            created_by=str(row["created_by"]),
            created_at=row["created_at"],
        )

    async def get_group(self, group_id: str) -> Group | None:
        row = await self.db.fetchrow("SELECT * FROM groups WHERE id = $1", group_id)
        if row is None:
            return None
        return Group(
            id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            created_by=str(row["created_by"]),
            created_at=row["created_at"],
        )

    async def list_user_groups(self, user_id: str) -> list[asyncpg.Record]:
        return await self.db.fetch(
            """
            SELECT g.id, g.name
            FROM groups g
            JOIN group_members gm ON gm.group_id = g.id
            WHERE gm.user_id = $1
            ORDER BY g.updated_at DESC
            """,
            user_id,
        )

    async def list_group_ids(self) -> list[str]:
        rows = await self.db.fetch("SELECT id FROM groups ORDER BY id")
        return [str(row["id"]) for row in rows]

    async def add_member(self, group_id: str, user_id: str) -> None:
        await self.db.execute(
            """
            INSERT INTO group_members (group_id, user_id)
            VALUES ($1, $2)
            ON CONFLICT (group_id, user_id) DO NOTHING
            """,
            group_id,
            user_id,
        )

    async def get_group_members(self, group_id: str) -> list[Member]:
        rows = await self.db.fetch(
            """
            SELECT gm.user_id, u.display_name, u.wallet_address, u.tg_id
            FROM group_members gm
            JOIN users u ON u.id = gm.user_id
            WHERE gm.group_id = $1
            ORDER BY gm.joined_at
            """,
            group_id,
        )
        return [_member_from_row(row) for row in rows]

    async def create_expense(
        self,
        group_id: str,
        paid_by: str,
        title: str,
        total_amount: Decimal,
        splits: Mapping[str, Decimal],
        currency: str,
        description: Optional[str] = None,
    ) -> Expense:
        async with self.db.transaction() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO expenses (group_id, paid_by, title, description, total_amount, currency)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING *
                """,
                group_id,
                paid_by,
                title,
                description,
                total_amount,
                currency,
            )
            assert row is not None
            expense_id = str(row["id"])
            await conn.executemany(
                """
                INSERT INTO expense_splits (expense_id, user_id, amount)
                VALUES ($1, $2, $3)
                """,
                [(expense_id, user_id, amount) for user_id, amount in splits.items()],
            )
            await self.log_activity(
                group_id,
                paid_by,
                ActivityType.EXPENSE_ADDED,
                {"title": title, "amount": str(total_amount), "expense_id": expense_id},
                conn=conn,
            )
            await conn.execute("UPDATE groups SET updated_at = now() WHERE id = $1", group_id)
        return Expense(
            id=expense_id,
            group_id=group_id,
            paid_by=paid_by,
            total_amount=row["total_amount"],
            splits=[ExpenseSplit(expense_id=expense_id, user_id=u, amount=a) for u, a in splits.items()],
            title=row["title"],
            description=row["description"],
            currency=row["currency"],
            created_at=row["created_at"],
        )

    async def get_expenses_for_group(self, group_id: str) -> list[Expense]:
        rows = await self.db.fetch(
            """
            SELECT e.*, u.display_name AS paid_by_name
            FROM expenses e
            LEFT JOIN users u ON u.id = e.paid_by
            WHERE e.group_id = $1
            ORDER BY e.created_at DESC
            """,
            group_id,
        )
        if not rows:
            return []

        split_rows = await self.db.fetch(
            """
            SELECT s.*
            FROM expense_splits s
            JOIN expenses e ON e.id = s.expense_id
            WHERE e.group_id = $1
            """,
            group_id,
        )
        splits: dict[str, list[ExpenseSplit]] = {}
        for s in split_rows:
            expense_id = str(s["expense_id"])
            splits.setdefault(expense_id, []).append(
                ExpenseSplit(
                    expense_id=expense_id,
                    user_id=str(s["user_id"]),
                    amount=s["amount"],
                    is_settled=s["is_settled"],
                    settled_tx_hash=s["settled_tx_hash"],
                    settled_at=s["settled_at"],
                )
            )

        return [
            Expense(
                id=str(row["id"]),
                group_id=str(row["group_id"]),
                paid_by=str(row["paid_by"]),
                total_amount=row["total_amount"],
                splits=splits.get(str(row["id"]), []),
                title=row["title"],
                description=row["description"],
                currency=row["currency"],
                created_at=row["created_at"],
                paid_by_name=row["paid_by_name"],
            )
            for row in rows
        ]

    async def insert_settlement_record(self, record: SettlementRecord) -> None:
        await self.db.execute(
            """
            INSERT INTO settlements (group_id, from_user, to_user, amount, tx_hash, memo, status)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            record.group_id,
            record.from_user,
            record.to_user,
            record.amount,
            record.tx_hash,
            record.memo,
            record.status.value,
        )
        await self.log_activity(
            record.group_id,
            record.from_user,
            ActivityType.SETTLEMENT,
            {"to_user_id": record.to_user, "amount": str(record.amount), "tx_hash": record.tx_hash},
        )

    async def mark_splits_settled(self, group_id: str, user_id: str, tx_hash: str) -> int:
        status = await self.db.execute(
            """
            UPDATE expense_splits s
            SET is_settled = true,
                settled_tx_hash = $3,
                settled_at = now()
            FROM expenses e
            WHERE e.id = s.expense_id
              AND e.group_id = $1
              AND s.user_id = $2
              AND s.is_settled = false
            """,
            group_id,
            user_id,
            tx_hash,
        )
        return _affected_rows(status)

    async def log_activity(
        self,
        group_id: str,
        actor_id: str,
        activity_type: ActivityType,
        metadata: Mapping[str, Any],
        conn: asyncpg.Connection | None = None,
    ) -> None:
        executor = conn if conn is not None else self.db
        await executor.execute(
            """
            INSERT INTO activity_feed (group_id, actor_id, type, metadata)
            VALUES ($1, $2, $3, $4::jsonb)
            """,
            group_id,
            actor_id,
            activity_type.value,
            json.dumps(dict(metadata)),
        )


_global_repo: SplitPayRepository | None = None


def set_global_repository(repo: SplitPayRepository) -> None:
    global _global_repo
    _global_repo = repo


def get_global_repository() -> SplitPayRepository:
    if _global_repo is None:
        raise RuntimeError("Repository is not initialized")
    return _global_repo
