"""Sequential execution of a user's share of a settlement plan.

Every transfer in the batch is attempted. A missing recipient address marks
the leg as skipped, a rejected submission marks it as failed, and neither
stops the batch. The user's splits in the group are only marked settled once
every leg has completed, so a partial batch can be retried leg by leg with
``SettlementExecutor.retry``.

Bookkeeping failures after money has moved are different: they raise
``SettlementPersistenceError`` immediately. Its report keeps the unrecorded
leg with its transaction hash and the legs not yet attempted, so ``retry``
writes the missing record without paying twice and then finishes the batch.
"""

from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol, Sequence

from splitpay.db.models import Expense, Member, SettlementRecord, SettlementStatus
from splitpay.logging import get_logger
from splitpay.services.balances import calculate_group_balances
from splitpay.services.settlement import (
    SettlementPlan,
    build_settlement_memo,
    compute_settlement_plan,
    encode_memo,
    transfers_for,
)
from splitpay.services.simplify import DebtEdge


class SettlementStore(Protocol):
    async def get_expenses_for_group(self, group_id: str) -> list[Expense]: ...

    async def get_group_members(self, group_id: str) -> list[Member]: ...

    async def insert_settlement_record(self, record: SettlementRecord) -> None: ...

    async def mark_splits_settled(self, group_id: str, user_id: str, tx_hash: str) -> int: ...


class AddressResolver(Protocol):
    async def resolve_recipient_address(self, user_id: str) -> Optional[str]: ...


class PaymentExecutor(Protocol):
    async def submit_transfer(self, to_address: str, amount: Decimal, memo: bytes) -> str: ...


class TransferStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"
    # Paid on-chain, settlement record not written yet.
    UNRECORDED = "unrecorded"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(slots=True)
class TransferOutcome:
    transfer: DebtEdge
    status: TransferStatus
    tx_hash: Optional[str] = None
    reason: Optional[str] = None


@dataclass(slots=True)
class SettlementReport:
    group_id: str
    user_id: str
    memo: str
    outcomes: list[TransferOutcome] = field(default_factory=list)
    splits_settled: bool = False

    @property
    def completed(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.status == TransferStatus.COMPLETED]

    @property
    def pending(self) -> list[TransferOutcome]:
        return [o for o in self.outcomes if o.status != TransferStatus.COMPLETED]

    @property
    def is_complete(self) -> bool:
        return not self.pending

    @property
    def last_tx_hash(self) -> Optional[str]:
        completed = self.completed
        return completed[-1].tx_hash if completed else None


class SettlementError(Exception):
    pass


class SettlementPersistenceError(SettlementError):
    """Money moved but the bookkeeping write that follows it failed."""

    def __init__(self, message: str, *, tx_hash: str, report: SettlementReport, transfer: DebtEdge | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash
        self.report = report
        self.transfer = transfer


class SettlementExecutor:
    def __init__(self, store: SettlementStore, resolver: AddressResolver, payments: PaymentExecutor) -> None:
        self.store = store
        self.resolver = resolver
        self.payments = payments
        self._locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()
        self._log = get_logger(__name__)

    def _lock_for(self, group_id: str, user_id: str) -> asyncio.Lock:
        key = (group_id, user_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def settle_group(self, group_id: str, user_id: str, description: str) -> SettlementReport:
        """Recompute the group's plan and settle everything ``user_id`` owes.

        Runs under the per-(group, user) lock, so a second call for the same
        pair waits and then sees the balances the first call left behind.
        """
        async with self._lock_for(group_id, user_id):
            expenses = await self.store.get_expenses_for_group(group_id)
            members = await self.store.get_group_members(group_id)
            plan = compute_settlement_plan(calculate_group_balances(expenses, members))
            memo = build_settlement_memo(group_id, description)
            return await self._execute(group_id, user_id, transfers_for(plan, user_id), memo)

    async def execute(self, group_id: str, user_id: str, plan: SettlementPlan, memo: str) -> SettlementReport:
        async with self._lock_for(group_id, user_id):
            return await self._execute(group_id, user_id, transfers_for(plan, user_id), memo)

    async def retry(self, report: SettlementReport) -> SettlementReport:
        """Finish a previous batch.

        Unsent legs are submitted again, legs that were paid but not recorded
        only get their settlement record written, and once every leg has
        completed the user's splits are marked settled.
        """
        if report.splits_settled or not report.outcomes:
            return report
        async with self._lock_for(report.group_id, report.user_id):
            retried = SettlementReport(
                group_id=report.group_id,
                user_id=report.user_id,
                memo=report.memo,
                outcomes=[replace(o) for o in report.completed],
            )
            await self._run_legs(retried, [replace(o) for o in report.pending])
            return await self._finish(retried)

    async def _execute(
        self,
        group_id: str,
        user_id: str,
        transfers: Sequence[DebtEdge],
        memo: str,
    ) -> SettlementReport:
        report = SettlementReport(group_id=group_id, user_id=user_id, memo=memo)

        if not transfers:
            self._log.info("settlement.noop", group_id=group_id, user_id=user_id)
            return report

        legs = [TransferOutcome(transfer=t, status=TransferStatus.NOT_ATTEMPTED) for t in transfers]
        await self._run_legs(report, legs)
        return await self._finish(report)

    async def _run_legs(self, report: SettlementReport, legs: Sequence[TransferOutcome]) -> None:
        memo_bytes = encode_memo(report.memo)
        for index, leg in enumerate(legs):
            if leg.status == TransferStatus.UNRECORDED:
                outcome = leg
            else:
                outcome = await self._transfer(report.group_id, leg.transfer, memo_bytes)
            report.outcomes.append(outcome)
            if outcome.status not in (TransferStatus.COMPLETED, TransferStatus.UNRECORDED):
                continue

            try:
                await self._record(report.group_id, outcome, report.memo)
            except Exception as exc:
                outcome.status = TransferStatus.UNRECORDED
                # The rest of the batch stays pending for retry.
                report.outcomes.extend(legs[index + 1 :])
                assert outcome.tx_hash is not None
                raise SettlementPersistenceError(
                    f"Transfer {outcome.tx_hash} completed but could not be recorded: {exc}",
                    tx_hash=outcome.tx_hash,
                    report=report,
                    transfer=outcome.transfer,
                ) from exc
            outcome.status = TransferStatus.COMPLETED

    async def _finish(self, report: SettlementReport) -> SettlementReport:
        log = self._log.bind(group_id=report.group_id, user_id=report.user_id)

        if not report.is_complete:
            log.warning(
                "settlement.partial",
                completed=len(report.completed),
                pending=len(report.pending),
            )
            return report

        tx_hash = report.last_tx_hash
        assert tx_hash is not None
        try:
            marked = await self.store.mark_splits_settled(report.group_id, report.user_id, tx_hash)
        except Exception as exc:
            log.error("settlement.mark_splits.failed", tx_hash=tx_hash, error=str(exc))
            raise SettlementPersistenceError(
                f"Transfers completed but splits could not be marked settled: {exc}",
                tx_hash=tx_hash,
                report=report,
            ) from exc

        report.splits_settled = True
        log.info("settlement.done", transfers=len(report.completed), splits=marked, tx_hash=tx_hash)
        return report

    async def _transfer(self, group_id: str, transfer: DebtEdge, memo_bytes: bytes) -> TransferOutcome:
        log = self._log.bind(group_id=group_id, from_user=transfer.from_user, to_user=transfer.to_user)

        address = await self.resolver.resolve_recipient_address(transfer.to_user)
        if not address:
            log.warning("settlement.transfer.no_address")
            return TransferOutcome(
                transfer=transfer,
                status=TransferStatus.SKIPPED,
                reason=f"No wallet found for {transfer.to_name}",
            )

        try:
            tx_hash = await self.payments.submit_transfer(address, transfer.amount, memo_bytes)
        except Exception as exc:
            log.error("settlement.transfer.failed", amount=str(transfer.amount), error=str(exc))
            return TransferOutcome(transfer=transfer, status=TransferStatus.FAILED, reason=str(exc) or type(exc).__name__)

        log.info("settlement.transfer.sent", amount=str(transfer.amount), tx_hash=tx_hash)
        return TransferOutcome(transfer=transfer, status=TransferStatus.COMPLETED, tx_hash=tx_hash)

    async def _record(self, group_id: str, outcome: TransferOutcome, memo: str) -> None:
        assert outcome.tx_hash is not None
        record = SettlementRecord(
            group_id=group_id,
            from_user=outcome.transfer.from_user,
            to_user=outcome.transfer.to_user,
            amount=outcome.transfer.amount,
            tx_hash=outcome.tx_hash,
            memo=memo,
            status=SettlementStatus.COMPLETED,
        )
        try:
            await self.store.insert_settlement_record(record)
        except Exception as exc:
            self._log.error("settlement.record.failed", group_id=group_id, tx_hash=outcome.tx_hash, error=str(exc))
            raise
