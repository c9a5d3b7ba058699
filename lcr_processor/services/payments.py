"""
Payment ledger.

Resolves the reviewer and copilot amounts of a challenge and keeps the
`project_payment` rows of reviewer-class resources in step with them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import structlog

from ..config import PaymentConfig, RolesConfig
from ..legacy import payments as payment_dao
from ..legacy.store import LegacyStore, Transaction
from ..metrics import MetricsCollector
from ..schemas import Challenge, MetadataEntry

log = structlog.get_logger()


@dataclass(frozen=True)
class PaymentContext:
    reviewer_amount: Decimal | None = None
    copilot_amount: Decimal | None = None
    # True when the reviewer amount was fixed through challenge metadata
    manual: bool = False


def _to_amount(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class PaymentLedger:
    def __init__(
        self,
        store: LegacyStore,
        config: PaymentConfig,
        roles: RolesConfig,
        metrics: MetricsCollector | None = None,
    ):
        self._store = store
        self._config = config
        self._roles = roles
        self._metrics = metrics

    # --- Amount resolution ---

    def _first_prize(self, challenge: Challenge, prize_type: str) -> Decimal | None:
        for prize_set in challenge.prizeSets:
            if prize_set.type.lower() == prize_type and prize_set.prizes:
                return _to_amount(prize_set.prizes[0].value)
        return None

    def _metadata_amount(self, metadata: Iterable[MetadataEntry]) -> Decimal | None:
        for entry in metadata:
            if entry.name == self._config.reviewer_metadata_name:
                return _to_amount(entry.value)
        return None

    def reviewer_amount(
        self, challenge: Challenge, metadata: Iterable[MetadataEntry] | None = None
    ) -> Decimal | None:
        """Reviewer prize set first, then the metadata override."""
        amount = self._first_prize(challenge, self._config.reviewer_prize_type)
        if amount is not None:
            return amount
        return self._metadata_amount(challenge.metadata if metadata is None else metadata)

    def copilot_amount(self, challenge: Challenge) -> Decimal | None:
        return self._first_prize(challenge, self._config.copilot_prize_type)

    def payment_context(
        self, challenge: Challenge, metadata: Iterable[MetadataEntry] | None = None
    ) -> PaymentContext:
        entries = list(challenge.metadata if metadata is None else metadata)
        from_prizes = self._first_prize(challenge, self._config.reviewer_prize_type)
        if from_prizes is not None:
            reviewer, manual = from_prizes, False
        else:
            reviewer = self._metadata_amount(entries)
            manual = reviewer is not None
        return PaymentContext(
            reviewer_amount=reviewer,
            copilot_amount=self.copilot_amount(challenge),
            manual=manual,
        )

    def payment_type_id(self, manual: bool) -> int:
        if manual:
            return self._config.manual_payment_type_id
        return self._config.reviewer_payment_type_id

    # --- Persistence ---

    async def persist_reviewer_payment(
        self,
        tx: Transaction,
        resource_id: int,
        amount: Decimal,
        manual: bool,
        operator: int | str,
    ) -> int:
        payment_id = await payment_dao.insert_payment(
            tx, resource_id, amount, self.payment_type_id(manual), operator
        )
        log.info(
            "payments.created",
            payment_id=payment_id,
            resource_id=resource_id,
            amount=str(amount),
            manual=manual,
        )
        return payment_id

    async def remove_reviewer_payment(self, tx: Transaction, resource_id: int) -> int:
        removed = await payment_dao.delete_payments(tx, resource_id)
        if removed:
            log.info("payments.removed", resource_id=resource_id, count=removed)
        return removed

    async def reconcile(
        self,
        legacy_id: int,
        challenge: Challenge,
        metadata: Iterable[MetadataEntry] | None,
        updated_by: str,
    ) -> int:
        """
        Converge every reviewer payment of the challenge to the resolved amount.

        Resources without a payment get a manual one; existing payments with a
        different amount are updated. Returns the number of rows written.
        """
        amount = self.reviewer_amount(challenge, metadata)
        if amount is None:
            log.debug("payments.no_amount", legacy_id=legacy_id)
            return 0

        written = 0
        async with self._store.transaction() as tx:
            rows = await payment_dao.payments_by_roles(
                tx, legacy_id, list(self._roles.reviewer_legacy_ids)
            )
            for row in rows:
                if row["project_payment_id"] is None:
                    await self.persist_reviewer_payment(
                        tx, row["resource_id"], amount, True, updated_by
                    )
                    written += 1
                elif _to_amount(row["amount"]) != amount:
                    await payment_dao.update_payment(
                        tx, row["project_payment_id"], amount, updated_by
                    )
                    log.info(
                        "payments.updated",
                        payment_id=row["project_payment_id"],
                        amount=str(amount),
                    )
                    written += 1

        if self._metrics and written:
            self._metrics.inc("payments_reconciled_total", written)
        log.info("payments.reconciled", legacy_id=legacy_id, amount=str(amount), written=written)
        return written
