"""
Tests for Bank Matching Engine

Covers the first-match auto-match run:
- Withdrawals against expenses, deposits against paid invoices
- Inclusive date and amount tolerances
- Deterministic tie-breaking and no double linking
"""

from decimal import Decimal
from datetime import date

from django.test import TestCase, override_settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from core.models import (
    Business,
    BankAccount,
    BankTransaction,
    Invoice,
    Expense,
)
from core.services.bank_matching import BankMatchingEngine

User = get_user_model()


class BankMatchingEngineTest(TestCase):
    """Test suite for BankMatchingEngine"""

    def setUp(self):
        """Set up test data"""
        self.user = User.objects.create_user(username="testuser", password="testpass123")
        self.business = Business.objects.create(
            name="Test Business", currency="USD", owner_user=self.user
        )
        self.bank_account = BankAccount.objects.create(
            business=self.business,
            name="Operating Checking",
            bank_name="Chase",
        )

    def _tx(self, amount, on, description="Statement line"):
        return BankTransaction.objects.create(
            bank_account=self.bank_account,
            date=on,
            description=description,
            amount=Decimal(amount),
        )

    def _expense(self, amount, on, **kwargs):
        return Expense.objects.create(
            business=self.business,
            amount=Decimal(amount),
            date=on,
            **kwargs,
        )

    def _invoice(self, number, amount, paid_on, status=Invoice.Status.PAID):
        return Invoice.objects.create(
            business=self.business,
            invoice_number=number,
            customer_name="Globex",
            issue_date=date(2024, 1, 2),
            paid_date=paid_on,
            total=Decimal(amount),
            status=status,
        )

    def test_withdrawal_matches_expense(self):
        expense = self._expense("120.00", date(2024, 1, 10))
        tx = self._tx("-120.00", date(2024, 1, 12))

        matched = BankMatchingEngine.auto_match(self.bank_account)

        self.assertEqual(matched, 1)
        tx.refresh_from_db()
        self.assertTrue(tx.reconciled)
        self.assertIsNotNone(tx.reconciled_at)
        self.assertEqual(tx.matched_expense, expense)
        self.assertIsNone(tx.matched_invoice)

    def test_deposit_matches_paid_invoice_by_paid_date(self):
        invoice = self._invoice("INV-100", "500.00", date(2024, 1, 20))
        tx = self._tx("500.00", date(2024, 1, 22))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 1)

        tx.refresh_from_db()
        self.assertEqual(tx.matched_invoice, invoice)
        self.assertIsNone(tx.matched_expense)

    def test_date_tolerance_is_inclusive(self):
        self._expense("50.00", date(2024, 1, 1))
        on_edge = self._tx("-50.00", date(2024, 1, 8))
        self._expense("60.00", date(2024, 1, 1))
        too_late = self._tx("-60.00", date(2024, 1, 9))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 1)

        on_edge.refresh_from_db()
        too_late.refresh_from_db()
        self.assertTrue(on_edge.reconciled)
        self.assertFalse(too_late.reconciled)

    def test_amount_tolerance(self):
        self._expense("100.00", date(2024, 1, 5))
        penny_off = self._tx("-100.01", date(2024, 1, 5))
        self._expense("200.00", date(2024, 1, 5))
        two_pennies_off = self._tx("-200.02", date(2024, 1, 5))

        BankMatchingEngine.auto_match(self.bank_account)

        penny_off.refresh_from_db()
        two_pennies_off.refresh_from_db()
        self.assertTrue(penny_off.reconciled)
        self.assertFalse(two_pennies_off.reconciled)

    def test_first_candidate_wins(self):
        older = self._expense("75.00", date(2024, 1, 3))
        self._expense("75.00", date(2024, 1, 6))
        tx = self._tx("-75.00", date(2024, 1, 6))

        BankMatchingEngine.auto_match(self.bank_account)

        tx.refresh_from_db()
        self.assertEqual(tx.matched_expense, older)

    def test_expense_is_never_linked_twice(self):
        expense = self._expense("40.00", date(2024, 2, 1))
        first = self._tx("-40.00", date(2024, 2, 1))
        second = self._tx("-40.00", date(2024, 2, 1))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 1)

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.matched_expense, expense)
        self.assertFalse(second.reconciled)
        self.assertEqual(expense.matched_bank_transactions.count(), 1)

    def test_link_rechecks_record_under_lock(self):
        expense = self._expense("40.00", date(2024, 2, 1))
        first = self._tx("-40.00", date(2024, 2, 1))
        second = self._tx("-40.00", date(2024, 2, 1))
        self.assertTrue(BankMatchingEngine._link(first, timezone.now(), expense=expense))

        # A stale candidate list still offers the expense to another run.
        self.assertFalse(BankMatchingEngine._link(second, timezone.now(), expense=expense))

        second.refresh_from_db()
        self.assertFalse(second.reconciled)
        self.assertIsNone(second.matched_expense)
        self.assertEqual(expense.matched_bank_transactions.count(), 1)

    def test_rerun_matches_nothing_new(self):
        self._expense("40.00", date(2024, 2, 1))
        self._tx("-40.00", date(2024, 2, 1))

        BankMatchingEngine.auto_match(self.bank_account)

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 0)

    def test_ineligible_records_are_skipped(self):
        self._expense("90.00", date(2024, 3, 1), status=Expense.Status.REJECTED)
        self._invoice("INV-200", "300.00", None, status=Invoice.Status.SENT)
        linked = self._expense("15.00", date(2024, 3, 1))
        BankTransaction.objects.create(
            bank_account=self.bank_account,
            date=date(2024, 3, 1),
            amount=Decimal("-15.00"),
            reconciled=True,
            matched_expense=linked,
        )
        withdrawal = self._tx("-90.00", date(2024, 3, 1))
        deposit = self._tx("300.00", date(2024, 3, 1))
        duplicate = self._tx("-15.00", date(2024, 3, 2))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 0)

        for tx in (withdrawal, deposit, duplicate):
            tx.refresh_from_db()
            self.assertFalse(tx.reconciled)

    def test_other_business_records_are_ignored(self):
        other_user = User.objects.create_user(username="other", password="testpass123")
        other_business = Business.objects.create(name="Other Co", owner_user=other_user)
        Expense.objects.create(business=other_business, amount=Decimal("33.00"), date=date(2024, 3, 1))
        self._tx("-33.00", date(2024, 3, 1))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 0)

    def test_custom_tolerances(self):
        self._expense("100.00", date(2024, 1, 1))
        tx = self._tx("-100.50", date(2024, 1, 20))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 0)
        self.assertEqual(
            BankMatchingEngine.auto_match(self.bank_account, tolerance_days=30, amount_tolerance="1.00"),
            1,
        )
        tx.refresh_from_db()
        self.assertTrue(tx.reconciled)

    @override_settings(RECONCILIATION_MATCH_TOLERANCE_DAYS=1)
    def test_tolerance_from_settings(self):
        self._expense("10.00", date(2024, 1, 1))
        self._tx("-10.00", date(2024, 1, 3))

        self.assertEqual(BankMatchingEngine.auto_match(self.bank_account), 0)
