"""
Bank Reconciliation Matching Engine

Pairs unreconciled bank movements with the records that explain them:
- Withdrawals (negative amounts) with unlinked expenses
- Deposits (positive amounts) with unlinked paid invoices

A candidate qualifies when its amount is within AMOUNT_TOLERANCE of the
movement and its date within DATE_TOLERANCE_DAYS. The first qualifying
candidate wins; there is no scoring. Transactions are scanned by (date, id)
and candidates by (date, id), so ties always resolve to the oldest record.

Configuration:
Adjust MatchingConfig class constants, or the RECONCILIATION_MATCH_* settings.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.models import (
    BankAccount,
    BankTransaction,
    Expense,
    Invoice,
)

logger = logging.getLogger(__name__)


# ============================================================================
# CONFIGURATION CONSTANTS
# ============================================================================

class MatchingConfig:
    """
    Configuration for the auto-match run.

    - DATE_TOLERANCE_DAYS: max days between the bank movement and the record date
    - AMOUNT_TOLERANCE: max difference between the movement and the record amount
    """

    DATE_TOLERANCE_DAYS: int = 7
    AMOUNT_TOLERANCE: Decimal = Decimal("0.01")

    @classmethod
    def date_tolerance_days(cls) -> int:
        return int(getattr(settings, "RECONCILIATION_MATCH_TOLERANCE_DAYS", cls.DATE_TOLERANCE_DAYS))

    @classmethod
    def amount_tolerance(cls) -> Decimal:
        return Decimal(str(getattr(settings, "RECONCILIATION_MATCH_AMOUNT_TOLERANCE", cls.AMOUNT_TOLERANCE)))


class BankMatchingEngine:
    """
    First-match auto-matching for bank reconciliation.

    Each match is written in its own transaction: the bank transaction is
    flagged with a conditional update so two concurrent runs can never
    reconcile it twice, and the candidate is re-checked for an existing link
    inside the same transaction.
    """

    @staticmethod
    def auto_match(
        bank_account: BankAccount,
        tolerance_days: Optional[int] = None,
        amount_tolerance=None,
        now=None,
    ) -> int:
        """
        Match every unreconciled transaction on ``bank_account``.

        Returns:
            Number of transactions matched in this run.
        """
        if tolerance_days is None:
            tolerance_days = MatchingConfig.date_tolerance_days()
        if amount_tolerance is None:
            amount_tolerance = MatchingConfig.amount_tolerance()
        amount_tolerance = Decimal(str(amount_tolerance))
        now = now or timezone.now()

        business = bank_account.business
        expenses = list(
            Expense.objects.filter(business=business, matched_bank_transactions__isnull=True)
            .exclude(status=Expense.Status.REJECTED)
            .order_by("date", "id")
        )
        invoices = list(
            Invoice.objects.filter(
                business=business,
                status=Invoice.Status.PAID,
                paid_date__isnull=False,
                matched_bank_transactions__isnull=True,
            ).order_by("paid_date", "id")
        )

        pending = BankTransaction.objects.filter(bank_account=bank_account, reconciled=False).order_by("date", "id")

        matched = 0
        for tx in pending:
            if tx.amount < 0:
                candidate = BankMatchingEngine._first_candidate(
                    tx, expenses, "amount", "date", amount_tolerance, tolerance_days
                )
                if candidate and BankMatchingEngine._link(tx, now, expense=candidate):
                    expenses.remove(candidate)
                    matched += 1
            elif tx.amount > 0:
                candidate = BankMatchingEngine._first_candidate(
                    tx, invoices, "total", "paid_date", amount_tolerance, tolerance_days
                )
                if candidate and BankMatchingEngine._link(tx, now, invoice=candidate):
                    invoices.remove(candidate)
                    matched += 1

        logger.info("Auto-matched %d transactions on bank account %s", matched, bank_account.id)
        return matched

    @staticmethod
    def _first_candidate(tx, candidates, amount_field, date_field, amount_tolerance, tolerance_days):
        amount_abs = abs(tx.amount)
        window = timedelta(days=tolerance_days)
        for candidate in candidates:
            if abs(getattr(candidate, amount_field) - amount_abs) > amount_tolerance:
                continue
            if abs(getattr(candidate, date_field) - tx.date) > window:
                continue
            return candidate
        return None

    @staticmethod
    @transaction.atomic
    def _link(tx: BankTransaction, now, *, expense=None, invoice=None) -> bool:
        record = expense or invoice
        # Lock the record so two runs cannot both see it unmatched.
        locked = type(record).objects.select_for_update().get(pk=record.pk)
        if locked.matched_bank_transactions.exists():
            return False

        updated = BankTransaction.objects.filter(pk=tx.pk, reconciled=False).update(
            reconciled=True,
            reconciled_at=now,
            matched_expense=expense,
            matched_invoice=invoice,
        )
        if not updated:
            return False

        tx.reconciled = True
        tx.reconciled_at = now
        tx.matched_expense = expense
        tx.matched_invoice = invoice
        logger.debug("Matched bank transaction %s to %s %s", tx.pk, record._meta.model_name, record.pk)
        return True
