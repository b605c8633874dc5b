"""
Bank Reconciliation Service

Manages reconciliation sessions for a bank account, bulk match/unmatch of
bank transactions, and the read-only summary used for human review.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from core.exceptions import SessionStateError
from core.models import (
    BankAccount,
    BankReconciliation,
    BankTransaction,
    get_balance_tolerance,
)

User = get_user_model()

logger = logging.getLogger(__name__)


def _sum(queryset, field="amount") -> Decimal:
    return queryset.aggregate(total=Sum(field))["total"] or Decimal("0.00")


class BankReconciliationService:
    """
    Session lifecycle: (none) -> IN_PROGRESS -> COMPLETED.
    Completed sessions are final; there is no way back to IN_PROGRESS.
    """

    @staticmethod
    @transaction.atomic
    def start_session(
        bank_account: BankAccount,
        start_date,
        end_date,
        closing_balance=None,
        opening_balance=None,
    ) -> BankReconciliation:
        """
        Open a reconciliation session for a statement period.

        The opening balance carries over from the latest completed session, or
        falls back to the account's current balance for the first session.
        """
        if start_date > end_date:
            raise ValidationError("Statement start date must be on or before the end date.")

        if opening_balance is None:
            previous = (
                BankReconciliation.objects.filter(
                    bank_account=bank_account,
                    status=BankReconciliation.Status.COMPLETED,
                )
                .order_by("-end_date", "-id")
                .first()
            )
            opening_balance = previous.closing_balance if previous else bank_account.balance
        if closing_balance is None:
            closing_balance = bank_account.balance

        reconciliation = BankReconciliation.objects.create(
            bank_account=bank_account,
            start_date=start_date,
            end_date=end_date,
            opening_balance=Decimal(str(opening_balance)),
            closing_balance=Decimal(str(closing_balance)),
            status=BankReconciliation.Status.IN_PROGRESS,
        )
        logger.info(
            "Started reconciliation %s for bank account %s (%s to %s)",
            reconciliation.id,
            bank_account.id,
            start_date,
            end_date,
        )
        return reconciliation

    @staticmethod
    def manual_match(transaction_ids: Iterable[int], user: Optional[User] = None) -> int:
        """
        Flag transactions as reconciled without linking them to a record
        (adjustments, opening-balance items).
        """
        return BankTransaction.objects.filter(pk__in=list(transaction_ids)).update(
            reconciled=True,
            reconciled_at=timezone.now(),
            reconciled_by=user,
        )

    @staticmethod
    def unmatch(transaction_ids: Iterable[int]) -> int:
        """Clear the reconciled flag. Links to expenses/invoices are kept."""
        return BankTransaction.objects.filter(pk__in=list(transaction_ids)).update(
            reconciled=False,
            reconciled_at=None,
            reconciled_by=None,
        )

    @staticmethod
    def clear_match(bank_transaction: BankTransaction) -> BankTransaction:
        """Unreconcile a transaction and drop its expense/invoice link."""
        bank_transaction.reconciled = False
        bank_transaction.reconciled_at = None
        bank_transaction.reconciled_by = None
        bank_transaction.matched_expense = None
        bank_transaction.matched_invoice = None
        bank_transaction.save(
            update_fields=[
                "reconciled",
                "reconciled_at",
                "reconciled_by",
                "matched_expense",
                "matched_invoice",
            ]
        )
        return bank_transaction

    @staticmethod
    def delete_bank_transaction(bank_transaction: BankTransaction) -> None:
        """Remove a transaction that disappeared upstream, releasing its match."""
        if bank_transaction.matched_expense_id or bank_transaction.matched_invoice_id:
            logger.info(
                "Releasing match of bank transaction %s (expense=%s, invoice=%s)",
                bank_transaction.pk,
                bank_transaction.matched_expense_id,
                bank_transaction.matched_invoice_id,
            )
        bank_transaction.delete()

    @staticmethod
    @transaction.atomic
    def complete_session(
        reconciliation: BankReconciliation,
        closing_balance=None,
        user: Optional[User] = None,
    ) -> BankReconciliation:
        """
        Close an IN_PROGRESS session. The balance equation is not enforced here;
        see get_reconciliation_summary for the difference to review.
        """
        session = BankReconciliation.objects.select_for_update().get(pk=reconciliation.pk)
        if session.status != BankReconciliation.Status.IN_PROGRESS:
            raise SessionStateError(session.status)

        now = timezone.now()
        if closing_balance is not None:
            session.closing_balance = Decimal(str(closing_balance))
        session.status = BankReconciliation.Status.COMPLETED
        session.completed_at = now
        session.reconciled_by = user
        session.save(update_fields=["closing_balance", "status", "completed_at", "reconciled_by"])

        BankAccount.objects.filter(pk=session.bank_account_id).update(last_reconciled=now)

        logger.info("Completed reconciliation %s", session.id)
        return session

    @staticmethod
    def get_reconciliation_summary(reconciliation: BankReconciliation) -> dict:
        """
        Cleared balance and difference for a session.

        Returns:
            Dict with opening/closing/cleared balances, the difference
            (closing - cleared), counts, reconciled deposits/withdrawals and the
            outstanding transactions in the period.
        """
        period = reconciliation.period_transactions()
        reconciled = period.filter(reconciled=True)
        outstanding = period.filter(reconciled=False)

        cleared_balance = reconciliation.opening_balance + _sum(reconciled)
        difference = reconciliation.closing_balance - cleared_balance

        return {
            "reconciliation_id": reconciliation.id,
            "status": reconciliation.status,
            "start_date": reconciliation.start_date,
            "end_date": reconciliation.end_date,
            "opening_balance": reconciliation.opening_balance,
            "closing_balance": reconciliation.closing_balance,
            "cleared_balance": cleared_balance,
            "difference": difference,
            "is_balanced": abs(difference) <= get_balance_tolerance(),
            "reconciled_count": reconciled.count(),
            "unreconciled_count": outstanding.count(),
            "reconciled_deposits": _sum(reconciled.filter(amount__gt=0)),
            "reconciled_withdrawals": -_sum(reconciled.filter(amount__lt=0)),
            "outstanding_transactions": list(outstanding.order_by("date", "id")),
        }

    @staticmethod
    def get_reconciliation_progress(bank_account) -> dict:
        """
        Get reconciliation progress statistics for a bank account.

        Returns:
            Dict with:
                - total_transactions: int
                - reconciled: int
                - unreconciled: int
                - total_reconciled_amount: Decimal
                - total_unreconciled_amount: Decimal
                - progress_percent: float
        """
        transactions = BankTransaction.objects.filter(bank_account=bank_account)
        reconciled_filter = Q(reconciled=True)

        total = transactions.count()
        reconciled = transactions.filter(reconciled_filter).count()
        unreconciled = total - reconciled

        return {
            "total_transactions": total,
            "reconciled": reconciled,
            "unreconciled": unreconciled,
            "total_reconciled_amount": _sum(transactions.filter(reconciled_filter)),
            "total_unreconciled_amount": _sum(transactions.exclude(reconciled_filter)),
            "progress_percent": round((reconciled / total * 100) if total > 0 else 0, 1),
        }
