"""
Reviewer payment rows (`project_payment`), keyed by resource.

The manual/automatic distinction is carried by `project_payment_type_id`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from .sequences import next_max_id
from .store import Row, Transaction

_INSERT_PAYMENT = """
INSERT INTO project_payment
  (project_payment_id, project_payment_type_id, resource_id, submission_id, amount,
   pacts_payment_id, create_user, create_date, modify_user, modify_date)
VALUES
  (:payment_id, :type_id, :resource_id, NULL, :amount,
   NULL, :operator, CURRENT_TIMESTAMP, :operator, CURRENT_TIMESTAMP)
"""

_DELETE_PAYMENTS = "DELETE FROM project_payment WHERE resource_id = :resource_id"

_UPDATE_AMOUNT = """
UPDATE project_payment
SET amount = :amount, modify_user = :operator, modify_date = CURRENT_TIMESTAMP
WHERE project_payment_id = :payment_id
"""

_PAYMENTS_BY_ROLES = """
SELECT r.resource_id AS resource_id, r.user_id AS user_id,
  pp.project_payment_id AS project_payment_id, pp.amount AS amount,
  pp.project_payment_type_id AS project_payment_type_id
FROM resource r
LEFT JOIN project_payment pp ON pp.resource_id = r.resource_id
WHERE r.project_id = :challenge_id AND r.resource_role_id IN ({placeholders})
ORDER BY r.resource_id
"""


async def insert_payment(
    tx: Transaction,
    resource_id: int,
    amount: Decimal,
    type_id: int,
    operator: int | str,
) -> int:
    payment_id = await next_max_id(tx, "project_payment", "project_payment_id")
    await tx.execute(
        _INSERT_PAYMENT,
        {
            "payment_id": payment_id,
            "type_id": type_id,
            "resource_id": resource_id,
            "amount": float(amount),
            "operator": str(operator),
        },
    )
    return payment_id


async def delete_payments(tx: Transaction, resource_id: int) -> int:
    return await tx.execute(_DELETE_PAYMENTS, {"resource_id": resource_id})


async def update_payment(
    tx: Transaction, payment_id: int, amount: Decimal, operator: int | str
) -> int:
    return await tx.execute(
        _UPDATE_AMOUNT,
        {
            "payment_id": payment_id,
            "amount": float(amount),
            "operator": str(operator),
        },
    )


async def payments_by_roles(
    tx: Transaction, challenge_id: int, role_ids: list[int]
) -> list[Row]:
    """One row per (resource, payment) of the given roles; payment columns are None when unpaid."""
    if not role_ids:
        return []
    params: dict[str, Any] = {"challenge_id": challenge_id}
    names = []
    for i, role_id in enumerate(role_ids):
        params[f"role_{i}"] = role_id
        names.append(f":role_{i}")
    return await tx.query(_PAYMENTS_BY_ROLES.format(placeholders=", ".join(names)), params)
