"""Plain-text receipt for a Successful transaction."""

from __future__ import annotations

from decimal import Decimal

from banca_kernel.domain.records import TransactionRecord
from banca_kernel.domain.transaction_state import TransactionKind, TransactionStatus
from banca_kernel.exceptions import InvalidStateError

_TITLES = {
    TransactionKind.TRANSFER: "TRANSFER RECEIPT",
    TransactionKind.SERVICE_PAYMENT: "SERVICE PAYMENT RECEIPT",
}


def _money(value: Decimal | None, currency: str) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f} {currency}"


def render_receipt_text(transaction: TransactionRecord) -> str:
    """
    Render the receipt lines for ``transaction``.

    Raises:
        InvalidStateError: The transaction did not reach Successful.
    """
    if transaction.status is not TransactionStatus.SUCCESSFUL:
        raise InvalidStateError(
            transaction.transaction_id, transaction.status.value, "render receipt for",
        )

    currency = transaction.currency
    destination = transaction.destination
    if destination.get("type") == "provider":
        target = f"provider {destination['provider_id']} contract {destination['contract_number']}"
    elif destination.get("type") == "beneficiary":
        target = f"beneficiary {destination['beneficiary_id']}"
    else:
        target = f"account {destination.get('account_id')}"

    lines = [
        _TITLES[transaction.kind],
        f"Reference:      {transaction.receipt_reference}",
        f"Executed at:    {transaction.executed_at:%Y-%m-%d %H:%M:%S}",
        f"From account:   {transaction.source_account_id}",
        f"To:             {target}",
        f"Amount:         {_money(transaction.amount, currency)}",
        f"Commission:     {_money(transaction.commission, currency)}",
        f"Total debited:  {_money(transaction.total_debit, currency)}",
        f"Balance before: {_money(transaction.balance_before, currency)}",
        f"Balance after:  {_money(transaction.balance_after, currency)}",
    ]
    if transaction.description:
        lines.append(f"Description:    {transaction.description}")
    return "\n".join(lines) + "\n"
