"""
Tests for canonical event postings and the category-to-account rules.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase

from core.accounting_defaults import AccountCodes
from core.accounting_posting import (
    EventKind,
    approve_expense,
    expense_account_code,
    income_account_code,
    mark_invoice_paid,
    mark_invoice_sent,
    post_canonical_event,
    post_expense,
    post_income,
    post_invoice_issued,
    post_invoice_paid,
    post_transaction_record,
    reject_expense,
)
from core.exceptions import AccountNotFoundError, LedgerError
from core.ledger_services import get_account_balance, lock_business, resolve_account
from core.models import Account, Business, Expense, Invoice, JournalEntry, Transaction

User = get_user_model()


class AccountRulesTest(SimpleTestCase):
    def test_expense_rules(self):
        self.assertEqual(expense_account_code("Salario enero"), AccountCodes.SALARIES)
        self.assertEqual(expense_account_code("PAYROLL"), AccountCodes.SALARIES)
        self.assertEqual(expense_account_code("Office Rent"), AccountCodes.RENT)
        self.assertEqual(expense_account_code("Alquiler local"), AccountCodes.RENT)
        self.assertEqual(expense_account_code("Servicio de luz"), AccountCodes.UTILITIES)
        self.assertEqual(expense_account_code("Water bill"), AccountCodes.UTILITIES)
        self.assertEqual(expense_account_code("Office supplies"), AccountCodes.OTHER_EXPENSES)
        self.assertEqual(expense_account_code(""), AccountCodes.OTHER_EXPENSES)
        self.assertEqual(expense_account_code(None), AccountCodes.OTHER_EXPENSES)

    def test_expense_rules_first_match_wins(self):
        # Matches both salary and rent keywords; salary is checked first.
        self.assertEqual(expense_account_code("Payroll for rent office"), AccountCodes.SALARIES)

    def test_income_rules(self):
        self.assertEqual(income_account_code("Consulting"), AccountCodes.SERVICE_REVENUE)
        self.assertEqual(income_account_code("Product sales"), AccountCodes.SALES_REVENUE)
        self.assertEqual(income_account_code("Interest"), AccountCodes.OTHER_INCOME)
        self.assertEqual(income_account_code(None), AccountCodes.OTHER_INCOME)


class CanonicalPostingTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)

    def _line_codes(self, entry):
        return [(line.account.code, line.debit, line.credit) for line in entry.lines.select_related("account")]

    def test_income_debits_cash_and_credits_mapped_revenue(self):
        entry = post_income(
            self.business,
            "1500",
            date=date(2024, 4, 2),
            description="April retainer",
            category="Consulting services",
        )

        self.assertEqual(
            self._line_codes(entry),
            [
                ("1000", Decimal("1500.00"), Decimal("0.00")),
                ("4100", Decimal("0.00"), Decimal("1500.00")),
            ],
        )
        self.assertTrue(entry.description.startswith("Income:"))

    def test_expense_debits_mapped_expense_and_credits_cash(self):
        entry = post_expense(self.business, Decimal("950.00"), date=date(2024, 4, 1), category="Rent")

        self.assertEqual(
            self._line_codes(entry),
            [
                ("5200", Decimal("950.00"), Decimal("0.00")),
                ("1000", Decimal("0.00"), Decimal("950.00")),
            ],
        )

    def test_posting_is_idempotent_by_reference(self):
        first = post_expense(self.business, "40.00", date=date(2024, 4, 1), reference="receipt:7")
        second = post_expense(self.business, "40.00", date=date(2024, 4, 1), reference="receipt:7")

        self.assertEqual(first, second)
        self.assertEqual(JournalEntry.objects.count(), 1)

    def test_idempotency_check_runs_under_business_lock(self):
        with patch("core.accounting_posting.lock_business", wraps=lock_business) as locked:
            post_expense(self.business, "40.00", date=date(2024, 4, 1), reference="receipt:8")

        locked.assert_called_once_with(self.business)

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(LedgerError):
            post_income(self.business, 0, date=date(2024, 4, 1))
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_canonical_event_dispatch(self):
        entry = post_canonical_event(
            EventKind.EXPENSE,
            "75.50",
            self.business,
            date=date(2024, 4, 3),
            category="Electricity",
        )
        self.assertEqual(entry.lines.first().account.code, AccountCodes.UTILITIES)

        with self.assertRaises(LedgerError):
            post_canonical_event("REFUND", "10", self.business)

    def test_legacy_transaction_record(self):
        txn = Transaction.objects.create(
            business=self.business,
            type=Transaction.TransactionType.INCOME,
            amount=Decimal("300.00"),
            category="Product sales",
            date=date(2024, 4, 5),
        )

        entry = post_transaction_record(txn)

        self.assertEqual(entry.reference, f"transaction:{txn.pk}")
        self.assertEqual(entry.lines.last().account.code, AccountCodes.SALES_REVENUE)


class InvoicePostingTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)
        self.invoice = Invoice.objects.create(
            business=self.business,
            invoice_number="INV-001",
            customer_name="Globex",
            issue_date=date(2024, 6, 1),
            total=Decimal("2000.00"),
        )

    def test_draft_invoice_is_not_posted(self):
        self.assertIsNone(post_invoice_issued(self.invoice))
        self.assertIsNone(post_canonical_event(EventKind.INVOICE_ISSUED, invoice=self.invoice))
        self.assertEqual(JournalEntry.objects.count(), 0)

    def test_sending_invoice_posts_receivable(self):
        entry = mark_invoice_sent(self.invoice, user=self.user)

        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.SENT)
        self.assertEqual(entry.reference, "invoice:INV-001")
        self.assertEqual(entry.date, date(2024, 6, 1))
        lines = list(entry.lines.select_related("account"))
        self.assertEqual(lines[0].account.code, AccountCodes.ACCOUNTS_RECEIVABLE)
        self.assertEqual(lines[0].debit, Decimal("2000.00"))
        self.assertEqual(lines[1].account.code, AccountCodes.SALES_REVENUE)
        self.assertEqual(lines[1].credit, Decimal("2000.00"))

    def test_unpaid_invoice_has_no_payment_entry(self):
        mark_invoice_sent(self.invoice)

        self.assertIsNone(post_invoice_paid(self.invoice))
        self.assertEqual(JournalEntry.objects.count(), 1)

    def test_paid_invoice_posts_payment_and_clears_receivable(self):
        mark_invoice_sent(self.invoice)
        payment = mark_invoice_paid(self.invoice, date(2024, 6, 20))

        self.assertEqual(payment.reference, "invoice:INV-001:payment")
        self.assertEqual(payment.date, date(2024, 6, 20))
        self.assertEqual(payment.lines.first().account.code, AccountCodes.BANK)

        ar = resolve_account(self.business, AccountCodes.ACCOUNTS_RECEIVABLE)
        bank = resolve_account(self.business, AccountCodes.BANK)
        self.assertEqual(get_account_balance(ar), Decimal("0.00"))
        self.assertEqual(get_account_balance(bank), Decimal("2000.00"))

    def test_paying_unsent_invoice_posts_issuance_first(self):
        mark_invoice_paid(self.invoice, date(2024, 6, 5))

        references = set(JournalEntry.objects.values_list("reference", flat=True))
        self.assertEqual(references, {"invoice:INV-001", "invoice:INV-001:payment"})

    def test_missing_receivable_account(self):
        Account.objects.filter(business__isnull=True, code=AccountCodes.ACCOUNTS_RECEIVABLE).delete()
        self.invoice.status = Invoice.Status.SENT
        self.invoice.save()

        with self.assertRaises(AccountNotFoundError) as ctx:
            post_invoice_issued(self.invoice)

        self.assertEqual(ctx.exception.account_code, AccountCodes.ACCOUNTS_RECEIVABLE)
        self.assertEqual(JournalEntry.objects.count(), 0)


class ExpenseApprovalTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)

    def _expense(self, **kwargs):
        return Expense.objects.create(
            business=self.business,
            description="Team salaries",
            category="Payroll",
            amount=Decimal("4000.00"),
            date=date(2024, 7, 31),
            **kwargs,
        )

    def test_approval_posts_entry(self):
        expense = self._expense()

        entry = approve_expense(expense, user=self.user)

        self.assertEqual(expense.status, Expense.Status.APPROVED)
        self.assertEqual(entry.reference, f"expense:{expense.pk}")
        self.assertEqual(entry.lines.first().account.code, AccountCodes.SALARIES)

    def test_rejection_posts_nothing(self):
        expense = self._expense()

        reject_expense(expense)

        expense.refresh_from_db()
        self.assertEqual(expense.status, Expense.Status.REJECTED)
        self.assertEqual(JournalEntry.objects.count(), 0)
