from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from core.accounting_posting import (
    approve_expense,
    mark_invoice_paid,
    mark_invoice_sent,
    post_expense,
    post_income,
    post_transaction_record,
)
from core.exceptions import LedgerError
from core.ledger_reports import (
    CashFlowActivity,
    ReportSource,
    build_balance_sheet,
    build_cash_flow_statement,
    build_income_statement,
    build_trial_balance,
)
from core.ledger_services import post_entry, reverse_entry
from core.models import Account, BankAccount, Business, Expense, Invoice, Transaction

User = get_user_model()

START = date(2024, 1, 1)
END = date(2024, 1, 31)


class IncomeStatementTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)

    def test_journal_only_statement(self):
        post_income(self.business, "1000.00", date=date(2024, 1, 5), category="Consulting")
        post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")
        post_expense(self.business, "999.00", date=date(2024, 2, 1), category="Rent")

        report = build_income_statement(self.business, START, END, source=ReportSource.JOURNAL)

        self.assertEqual(report["revenue"]["categories"], {"Service Revenue": Decimal("1000.00")})
        self.assertEqual(report["expenses"]["categories"], {"Rent": Decimal("300.00")})
        self.assertEqual(report["revenue"]["total"], Decimal("1000.00"))
        self.assertEqual(report["expenses"]["total"], Decimal("300.00"))
        self.assertEqual(report["net_income"], Decimal("700.00"))
        self.assertEqual(report["net_margin"], Decimal("70.00"))
        self.assertEqual(report["source"], "journal")
        self.assertEqual(report["period"], {"start_date": START, "end_date": END})

    def test_migrated_record_is_counted_once(self):
        txn = Transaction.objects.create(
            business=self.business,
            type=Transaction.TransactionType.INCOME,
            amount=Decimal("1000.00"),
            category="Consulting",
            date=date(2024, 1, 15),
        )
        post_transaction_record(txn)

        report = build_income_statement(self.business, START, END)

        self.assertEqual(report["revenue"]["total"], Decimal("1000.00"))
        self.assertEqual(report["sources"]["journal"]["revenue"], Decimal("1000.00"))
        self.assertEqual(report["sources"]["legacy"]["income"], Decimal("0.00"))

    def test_approved_expense_is_counted_once(self):
        expense = Expense.objects.create(
            business=self.business,
            description="January rent",
            category="Rent",
            amount=Decimal("300.00"),
            date=date(2024, 1, 10),
        )
        approve_expense(expense, user=self.user)

        report = build_income_statement(self.business, START, END, source=ReportSource.BOTH)

        self.assertEqual(report["expenses"]["total"], Decimal("300.00"))
        self.assertEqual(report["expenses"]["categories"], {"Rent": Decimal("300.00")})
        self.assertEqual(report["sources"]["journal"]["expenses"], Decimal("300.00"))
        self.assertEqual(report["sources"]["legacy"]["expenses"], Decimal("0.00"))

    def test_legacy_source_skips_migrated_expense(self):
        posted = Expense.objects.create(
            business=self.business,
            category="Rent",
            amount=Decimal("300.00"),
            date=date(2024, 1, 10),
        )
        approve_expense(posted)
        Expense.objects.create(
            business=self.business,
            category="Utilities",
            amount=Decimal("45.00"),
            date=date(2024, 1, 11),
        )

        report = build_income_statement(self.business, START, END, source=ReportSource.LEGACY)

        self.assertEqual(report["expenses"]["categories"], {"Utilities": Decimal("45.00")})
        self.assertEqual(report["sources"]["legacy"]["expenses"], Decimal("45.00"))
        self.assertEqual(report["sources"]["journal"]["expenses"], Decimal("0.00"))

    def test_legacy_only_statement(self):
        Transaction.objects.create(
            business=self.business,
            type=Transaction.TransactionType.INCOME,
            amount=Decimal("500.00"),
            category="Consulting",
            date=date(2024, 1, 3),
        )
        Transaction.objects.create(
            business=self.business,
            type=Transaction.TransactionType.INCOME,
            amount=Decimal("80.00"),
            date=date(2024, 1, 4),
        )
        Transaction.objects.create(
            business=self.business,
            type=Transaction.TransactionType.INCOME,
            amount=Decimal("700.00"),
            date=date(2024, 1, 4),
            status=Transaction.Status.CANCELLED,
        )
        Expense.objects.create(business=self.business, amount=Decimal("200.00"), date=date(2024, 1, 8))
        Expense.objects.create(
            business=self.business,
            amount=Decimal("50.00"),
            date=date(2024, 1, 8),
            status=Expense.Status.REJECTED,
        )
        post_income(self.business, "400.00", date=date(2024, 1, 5))

        report = build_income_statement(self.business, START, END, source="legacy")

        self.assertEqual(
            report["revenue"]["categories"],
            {"Consulting": Decimal("500.00"), "Uncategorized Income": Decimal("80.00")},
        )
        self.assertEqual(report["expenses"]["categories"], {"Other Expenses": Decimal("200.00")})
        self.assertEqual(report["net_income"], Decimal("380.00"))
        self.assertEqual(report["sources"]["journal"]["revenue"], Decimal("0.00"))

    def test_reversed_entry_nets_to_zero(self):
        entry = post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")
        reverse_entry(entry, date=date(2024, 1, 12))

        report = build_income_statement(self.business, START, END)

        self.assertEqual(report["expenses"]["total"], Decimal("0.00"))
        self.assertEqual(report["expenses"]["categories"], {})

    def test_no_revenue_gives_zero_margin(self):
        post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")

        report = build_income_statement(self.business, START, END)

        self.assertEqual(report["net_income"], Decimal("-300.00"))
        self.assertEqual(report["net_margin"], Decimal("0.00"))

    def test_unknown_source_rejected(self):
        with self.assertRaises(LedgerError):
            build_income_statement(self.business, START, END, source="bank")


class TrialBalanceTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)

    def test_trial_balance_balances(self):
        post_income(self.business, "1000.00", date=date(2024, 1, 5), category="Consulting")
        post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")
        post_expense(self.business, "50.00", date=date(2024, 3, 1), category="Rent")

        report = build_trial_balance(self.business, as_of=END)

        self.assertTrue(report["is_balanced"])
        self.assertEqual(report["total_debit"], Decimal("1000.00"))
        self.assertEqual(report["total_credit"], Decimal("1000.00"))
        rows = {row["code"]: row for row in report["accounts"]}
        self.assertEqual(rows["1000"]["debit"], Decimal("700.00"))
        self.assertEqual(rows["4100"]["credit"], Decimal("1000.00"))
        self.assertEqual(rows["5200"]["balance"], Decimal("300.00"))


class BalanceSheetTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)
        self.loan = Account.objects.create(
            business=self.business,
            code="2500",
            name="Long-term Loan",
            type=Account.AccountType.LIABILITY,
        )

    def test_balance_sheet_balances_with_closed_earnings(self):
        post_entry(
            self.business,
            date(2023, 3, 1),
            "Owner contribution",
            [
                {"account_code": "1000", "debit": "5000.00"},
                {"account_code": "3000", "credit": "5000.00"},
            ],
        )
        post_income(self.business, "1000.00", date=date(2023, 6, 1), category="Consulting")
        post_income(self.business, "1000.00", date=date(2024, 1, 5), category="Consulting")
        post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")
        invoice = Invoice.objects.create(
            business=self.business,
            invoice_number="INV-100",
            issue_date=date(2024, 1, 12),
            total=Decimal("2000.00"),
        )
        mark_invoice_sent(invoice)
        post_entry(
            self.business,
            date(2024, 1, 15),
            "Bank loan",
            [
                {"account_code": "1000", "debit": "4000.00"},
                {"account": self.loan, "credit": "4000.00"},
            ],
        )
        post_expense(self.business, "75.00", date=date(2024, 2, 1), category="Rent")

        report = build_balance_sheet(self.business, END)

        self.assertEqual(report["total_assets"], Decimal("12700.00"))
        current = {row["code"]: row["balance"] for row in report["assets"]["current"]}
        self.assertEqual(current, {"1000": Decimal("10700.00"), "1200": Decimal("2000.00")})
        self.assertEqual(report["assets"]["fixed"], [])
        self.assertEqual(report["liabilities"]["current"], [])
        self.assertEqual(report["liabilities"]["long_term"][0]["name"], "Long-term Loan")
        self.assertEqual(report["liabilities"]["total"], Decimal("4000.00"))
        self.assertEqual(report["equity"]["prior_earnings"], Decimal("1000.00"))
        self.assertEqual(report["equity"]["current_period_income"], Decimal("2700.00"))
        self.assertEqual(report["equity"]["total"], Decimal("8700.00"))
        self.assertEqual(report["total_liabilities_and_equity"], Decimal("12700.00"))
        self.assertTrue(report["is_balanced"])

    def test_empty_ledger(self):
        report = build_balance_sheet(self.business, END)

        self.assertEqual(report["total_assets"], Decimal("0.00"))
        self.assertEqual(report["equity"]["total"], Decimal("0.00"))
        self.assertTrue(report["is_balanced"])


class CashFlowStatementTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="owner", password="testpass123")
        self.business = Business.objects.create(name="Acme Books", currency="USD", owner_user=self.user)
        self.equipment = Account.objects.create(
            business=self.business,
            code="1500",
            name="Equipment",
            type=Account.AccountType.ASSET,
        )

    def _contribution(self, amount, on):
        return post_entry(
            self.business,
            on,
            "Owner contribution",
            [
                {"account_code": "1000", "debit": amount},
                {"account_code": "3000", "credit": amount},
            ],
        )

    def test_cash_flow_by_activity(self):
        self._contribution("5000.00", date(2023, 12, 15))
        post_income(self.business, "1000.00", date=date(2024, 1, 5), category="Consulting")
        post_expense(self.business, "300.00", date=date(2024, 1, 10), category="Rent")
        invoice = Invoice.objects.create(
            business=self.business,
            invoice_number="INV-200",
            issue_date=date(2024, 1, 2),
            total=Decimal("2000.00"),
        )
        mark_invoice_sent(invoice)
        mark_invoice_paid(invoice, date(2024, 1, 20))
        self._contribution("2500.00", date(2024, 1, 3))
        post_entry(
            self.business,
            date(2024, 1, 25),
            "Laptop",
            [
                {"account": self.equipment, "debit": "1500.00"},
                {"account_code": "1000", "credit": "1500.00"},
            ],
        )
        post_entry(
            self.business,
            date(2024, 1, 26),
            "Move cash to bank",
            [
                {"account_code": "1100", "debit": "400.00"},
                {"account_code": "1000", "credit": "400.00"},
            ],
        )

        report = build_cash_flow_statement(self.business, START, END)

        self.assertEqual(report["operating"]["total"], Decimal("2700.00"))
        self.assertEqual(len(report["operating"]["items"]), 3)
        self.assertEqual(report["investing"]["total"], Decimal("-1500.00"))
        self.assertEqual(report["investing"]["items"][0]["account"], "Equipment")
        self.assertEqual(report["financing"]["total"], Decimal("2500.00"))
        self.assertEqual(report["net_cash_flow"], Decimal("3700.00"))
        self.assertEqual(report["beginning_cash"], Decimal("5000.00"))
        self.assertEqual(report["ending_cash"], Decimal("8700.00"))
        descriptions = [
            item["description"] for section in CashFlowActivity.values for item in report[section]["items"]
        ]
        self.assertNotIn("Move cash to bank", descriptions)

    def test_bank_feed_account_counts_as_cash(self):
        clearing = Account.objects.create(
            business=self.business,
            code="1050",
            name="Card Clearing",
            type=Account.AccountType.ASSET,
        )
        BankAccount.objects.create(business=self.business, name="Card", account=clearing)
        post_entry(
            self.business,
            date(2024, 1, 8),
            "Card sale",
            [
                {"account": clearing, "debit": "120.00"},
                {"account_code": "4000", "credit": "120.00"},
            ],
        )

        report = build_cash_flow_statement(self.business, START, END)

        self.assertEqual(report["operating"]["total"], Decimal("120.00"))
        self.assertEqual(report["ending_cash"], Decimal("120.00"))
