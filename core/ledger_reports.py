from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from django.db import models
from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce

from .accounting_defaults import AccountCodes
from .exceptions import LedgerError
from .ledger_services import reference_for
from .models import Account, Expense, JournalEntry, JournalLine, Transaction, get_balance_tolerance

ZERO = Decimal("0.00")
UNCATEGORIZED_INCOME = "Uncategorized Income"
UNCATEGORIZED_EXPENSE = "Other Expenses"
FIXED_ASSET_KEYWORDS = ("fixed", "property", "equipment")
LONG_TERM_LIABILITY_KEYWORDS = ("long-term", "long term", "mortgage")
CASH_ACCOUNT_CODES = (AccountCodes.CASH, AccountCodes.BANK)
WORKING_CAPITAL_CODES = (AccountCodes.ACCOUNTS_RECEIVABLE, AccountCodes.ACCOUNTS_PAYABLE)


class ReportSource(models.TextChoices):
    JOURNAL = "journal", "Journal entries"
    LEGACY = "legacy", "Legacy records"
    BOTH = "both", "Journal entries and legacy records"


class CashFlowActivity(models.TextChoices):
    OPERATING = "operating", "Operating activities"
    INVESTING = "investing", "Investing activities"
    FINANCING = "financing", "Financing activities"


def _journal_totals_by_account(business, start_date, end_date):
    base = JournalLine.objects.filter(
        journal_entry__business=business,
        journal_entry__date__range=(start_date, end_date),
        journal_entry__status__in=[JournalEntry.Status.POSTED, JournalEntry.Status.REVERSED],
    )
    revenue_rows = (
        base.filter(account__type=Account.AccountType.REVENUE)
        .values("account__name")
        .annotate(total=Sum("credit") - Sum("debit"))
        .order_by("account__name")
    )
    expense_rows = (
        base.filter(account__type=Account.AccountType.EXPENSE)
        .values("account__name")
        .annotate(total=Sum("debit") - Sum("credit"))
        .order_by("account__name")
    )
    return (
        {row["account__name"]: row["total"] or ZERO for row in revenue_rows},
        {row["account__name"]: row["total"] or ZERO for row in expense_rows},
    )


def _legacy_totals_by_category(business, start_date, end_date):
    """
    Income/expense buckets from pre-ledger records, skipping any record already
    mirrored into the ledger by a journal entry dated in the same window.
    """
    posted_references = set(
        JournalEntry.objects.filter(
            business=business,
            date__range=(start_date, end_date),
            reference__isnull=False,
        ).values_list("reference", flat=True)
    )

    income = defaultdict(lambda: ZERO)
    expenses = defaultdict(lambda: ZERO)

    transactions = Transaction.objects.filter(
        business=business,
        status=Transaction.Status.COMPLETED,
        date__range=(start_date, end_date),
    )
    for txn in transactions:
        if reference_for(txn) in posted_references:
            continue
        if txn.type == Transaction.TransactionType.INCOME:
            income[txn.category or UNCATEGORIZED_INCOME] += txn.amount
        else:
            expenses[txn.category or UNCATEGORIZED_EXPENSE] += txn.amount

    legacy_expenses = Expense.objects.filter(
        business=business,
        date__range=(start_date, end_date),
    ).exclude(status=Expense.Status.REJECTED)
    for expense in legacy_expenses:
        if reference_for(expense) in posted_references:
            continue
        expenses[expense.category or UNCATEGORIZED_EXPENSE] += expense.amount

    return dict(income), dict(expenses)


def _merge(*buckets):
    merged = defaultdict(lambda: ZERO)
    for bucket in buckets:
        for name, amount in bucket.items():
            merged[name] += amount
    return {name: amount for name, amount in sorted(merged.items()) if amount > 0}


def build_income_statement(business, start_date, end_date, source=ReportSource.BOTH):
    """
    Income statement for ``business`` between two dates (inclusive).

    ``source`` picks journal-derived totals, legacy records, or both. Legacy
    records that already have a journal entry are only counted once, on the
    journal side.
    """
    if source not in ReportSource.values:
        raise LedgerError(f"Unknown income statement source: {source}", code="invalid_source")

    journal_revenue, journal_expenses = {}, {}
    legacy_income, legacy_expenses = {}, {}
    if source in (ReportSource.JOURNAL, ReportSource.BOTH):
        journal_revenue, journal_expenses = _journal_totals_by_account(business, start_date, end_date)
    if source in (ReportSource.LEGACY, ReportSource.BOTH):
        legacy_income, legacy_expenses = _legacy_totals_by_category(business, start_date, end_date)

    journal_revenue_total = sum(journal_revenue.values(), ZERO)
    journal_expense_total = sum(journal_expenses.values(), ZERO)
    legacy_income_total = sum(legacy_income.values(), ZERO)
    legacy_expense_total = sum(legacy_expenses.values(), ZERO)

    total_revenue = journal_revenue_total + legacy_income_total
    total_expenses = journal_expense_total + legacy_expense_total
    net_income = total_revenue - total_expenses
    net_margin = ZERO
    if total_revenue > 0:
        net_margin = (net_income / total_revenue * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return {
        "period": {"start_date": start_date, "end_date": end_date},
        "source": str(source),
        "revenue": {
            "categories": _merge(journal_revenue, legacy_income),
            "total": total_revenue,
        },
        "expenses": {
            "categories": _merge(journal_expenses, legacy_expenses),
            "total": total_expenses,
        },
        "net_income": net_income,
        "net_margin": net_margin,
        "sources": {
            "journal": {"revenue": journal_revenue_total, "expenses": journal_expense_total},
            "legacy": {"income": legacy_income_total, "expenses": legacy_expense_total},
        },
    }


def _sum_side(qs, field):
    return qs.aggregate(total=Sum(field))["total"] or ZERO


def _accounts_with_totals(business, as_of=None):
    """Company and global accounts annotated with this business's debit/credit totals."""
    line_filter = Q(journal_lines__journal_entry__business=business)
    if as_of:
        line_filter &= Q(journal_lines__journal_entry__date__lte=as_of)

    return (
        Account.objects.filter(Q(business=business) | Q(business__isnull=True))
        .annotate(
            total_debit=Coalesce(
                Sum("journal_lines__debit", filter=line_filter),
                Value(ZERO),
            ),
            total_credit=Coalesce(
                Sum("journal_lines__credit", filter=line_filter),
                Value(ZERO),
            ),
        )
        .order_by("code", "name")
    )


def build_trial_balance(business, as_of=None):
    """
    Debit/credit balance of every account the business has posted to, including
    shared global accounts, up to ``as_of``.
    """
    rows = []
    total_debit = ZERO
    total_credit = ZERO
    for acc in _accounts_with_totals(business, as_of):
        if not acc.total_debit and not acc.total_credit:
            continue
        net = acc.total_debit - acc.total_credit
        debit_balance = net if net > 0 else ZERO
        credit_balance = -net if net < 0 else ZERO
        rows.append(
            {
                "id": acc.id,
                "code": acc.code,
                "name": acc.name,
                "type": acc.type,
                "debit": debit_balance,
                "credit": credit_balance,
                "balance": acc.signed_amount(acc.total_debit, acc.total_credit),
            }
        )
        total_debit += debit_balance
        total_credit += credit_balance

    return {
        "as_of": as_of,
        "accounts": rows,
        "total_debit": total_debit,
        "total_credit": total_credit,
        "is_balanced": abs(total_debit - total_credit) <= get_balance_tolerance(),
    }


def _net_income(business, start_date=None, end_date=None):
    lines = JournalLine.objects.filter(journal_entry__business=business)
    if start_date:
        lines = lines.filter(journal_entry__date__gte=start_date)
    if end_date:
        lines = lines.filter(journal_entry__date__lte=end_date)
    revenue = lines.filter(account__type=Account.AccountType.REVENUE)
    expenses = lines.filter(account__type=Account.AccountType.EXPENSE)
    total_revenue = _sum_side(revenue, "credit") - _sum_side(revenue, "debit")
    total_expenses = _sum_side(expenses, "debit") - _sum_side(expenses, "credit")
    return total_revenue - total_expenses


def _name_matches(account, keywords):
    name = account.name.lower()
    return any(keyword in name for keyword in keywords)


def build_balance_sheet(business, as_of):
    """
    Assets against liabilities and equity as of a date.

    Revenue and expense accounts are closed into equity on the fly: earnings
    from earlier years land in ``prior_earnings`` and the year to ``as_of`` in
    ``current_period_income``.
    """
    assets = {"current": [], "fixed": []}
    liabilities = {"current": [], "long_term": []}
    equity_accounts = []

    for acc in _accounts_with_totals(business, as_of):
        if not acc.total_debit and not acc.total_credit:
            continue
        row = {
            "id": acc.id,
            "code": acc.code,
            "name": acc.name,
            "balance": acc.signed_amount(acc.total_debit, acc.total_credit),
        }
        if acc.type == Account.AccountType.ASSET:
            group = "fixed" if _name_matches(acc, FIXED_ASSET_KEYWORDS) else "current"
            assets[group].append(row)
        elif acc.type == Account.AccountType.LIABILITY:
            group = "long_term" if _name_matches(acc, LONG_TERM_LIABILITY_KEYWORDS) else "current"
            liabilities[group].append(row)
        elif acc.type == Account.AccountType.EQUITY:
            equity_accounts.append(row)

    year_start = date(as_of.year, 1, 1)
    prior_earnings = _net_income(business, end_date=year_start - timedelta(days=1))
    current_period_income = _net_income(business, year_start, as_of)

    total_assets = sum((row["balance"] for rows in assets.values() for row in rows), ZERO)
    total_liabilities = sum((row["balance"] for rows in liabilities.values() for row in rows), ZERO)
    total_equity = sum((row["balance"] for row in equity_accounts), ZERO) + prior_earnings + current_period_income
    total_liabilities_and_equity = total_liabilities + total_equity

    return {
        "as_of": as_of,
        "assets": {**assets, "total": total_assets},
        "liabilities": {**liabilities, "total": total_liabilities},
        "equity": {
            "accounts": equity_accounts,
            "prior_earnings": prior_earnings,
            "current_period_income": current_period_income,
            "total": total_equity,
        },
        "total_assets": total_assets,
        "total_liabilities_and_equity": total_liabilities_and_equity,
        "is_balanced": abs(total_assets - total_liabilities_and_equity) <= get_balance_tolerance(),
    }


def cash_account_ids(business):
    """Cash and bank ledger accounts, plus any account a bank feed posts to."""
    return set(
        Account.objects.filter(
            (Q(business=business) | Q(business__isnull=True)) & Q(code__in=CASH_ACCOUNT_CODES)
            | Q(bank_account__business=business)
        ).values_list("id", flat=True)
    )


def cash_flow_activity(account):
    if account is None:
        return CashFlowActivity.OPERATING
    if account.type in (Account.AccountType.REVENUE, Account.AccountType.EXPENSE):
        return CashFlowActivity.OPERATING
    if account.code in WORKING_CAPITAL_CODES:
        return CashFlowActivity.OPERATING
    if account.type == Account.AccountType.ASSET:
        return CashFlowActivity.INVESTING
    return CashFlowActivity.FINANCING


def build_cash_flow_statement(business, start_date, end_date):
    """
    Cash movements between two dates (inclusive), read from the ledger.

    Each entry that moves cash is classified by its first non-cash line.
    Transfers between cash accounts net to zero and are left out.
    """
    cash_ids = cash_account_ids(business)
    sections = {activity: {"items": [], "total": ZERO} for activity in CashFlowActivity.values}

    entries = (
        JournalEntry.objects.filter(
            business=business,
            date__range=(start_date, end_date),
            lines__account_id__in=cash_ids,
        )
        .distinct()
        .prefetch_related("lines__account")
        .order_by("date", "id")
    )
    for entry in entries:
        lines = sorted(entry.lines.all(), key=lambda line: line.line_number)
        cash_delta = sum(
            (line.debit - line.credit for line in lines if line.account_id in cash_ids),
            ZERO,
        )
        if cash_delta == ZERO:
            continue
        counterpart = next((line.account for line in lines if line.account_id not in cash_ids), None)
        section = sections[cash_flow_activity(counterpart)]
        section["items"].append(
            {
                "date": entry.date,
                "entry_number": entry.entry_number,
                "description": entry.description,
                "account": counterpart.name if counterpart else None,
                "amount": cash_delta,
            }
        )
        section["total"] += cash_delta

    opening_lines = JournalLine.objects.filter(
        journal_entry__business=business,
        journal_entry__date__lt=start_date,
        account_id__in=cash_ids,
    )
    beginning_cash = _sum_side(opening_lines, "debit") - _sum_side(opening_lines, "credit")
    net_cash_flow = sum((section["total"] for section in sections.values()), ZERO)

    return {
        "period": {"start_date": start_date, "end_date": end_date},
        **sections,
        "net_cash_flow": net_cash_flow,
        "beginning_cash": beginning_cash,
        "ending_cash": beginning_cash + net_cash_flow,
    }
