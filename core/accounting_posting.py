from __future__ import annotations

import logging
from decimal import Decimal

from django.db import models, transaction
from django.utils import timezone

from core.accounting_defaults import AccountCodes
from core.exceptions import LedgerError
from core.ledger_services import (
    lock_business,
    post_entry,
    posted_entry_for_reference,
    reference_for,
    resolve_account,
    to_amount,
)
from core.models import Expense, Invoice, Transaction

logger = logging.getLogger(__name__)


# Ordered (keywords, account code) rules; the first rule with a keyword found
# in the category wins.
EXPENSE_ACCOUNT_RULES = [
    (("salario", "salary", "sueldo", "payroll", "wage"), AccountCodes.SALARIES),
    (("alquiler", "rent"), AccountCodes.RENT),
    (("servicio", "utilit", "luz", "agua", "electric", "water"), AccountCodes.UTILITIES),
]

INCOME_ACCOUNT_RULES = [
    (("service", "servicio", "consult"), AccountCodes.SERVICE_REVENUE),
    (("sale", "venta", "product"), AccountCodes.SALES_REVENUE),
]


class EventKind(models.TextChoices):
    INCOME = "INCOME", "Income"
    EXPENSE = "EXPENSE", "Expense"
    INVOICE_ISSUED = "INVOICE_ISSUED", "Invoice issued"
    INVOICE_PAID = "INVOICE_PAID", "Invoice paid"


def resolve_account_code(category: str | None, rules, default: str) -> str:
    text = (category or "").lower()
    for keywords, code in rules:
        if any(keyword in text for keyword in keywords):
            return code
    return default


def expense_account_code(category: str | None) -> str:
    return resolve_account_code(category, EXPENSE_ACCOUNT_RULES, AccountCodes.OTHER_EXPENSES)


def income_account_code(category: str | None) -> str:
    return resolve_account_code(category, INCOME_ACCOUNT_RULES, AccountCodes.OTHER_INCOME)


def _existing_posting(business, reference):
    if not reference:
        return None
    # Check under the business lock so concurrent postings of one record serialize.
    lock_business(business)
    return posted_entry_for_reference(business, reference)


def _positive_amount(amount) -> Decimal:
    value = to_amount(amount)
    if value <= 0:
        raise LedgerError("Amount must be greater than zero.", code="non_positive_amount")
    return value


@transaction.atomic
def post_income(business, amount, *, date=None, description="", category="", reference=None, created_by=None):
    """Cash received without an invoice: debit Cash, credit a revenue account."""
    existing = _existing_posting(business, reference)
    if existing is not None:
        return existing

    value = _positive_amount(amount)
    cash = resolve_account(business, AccountCodes.CASH)
    revenue = resolve_account(business, income_account_code(category))
    return post_entry(
        business,
        date or timezone.localdate(),
        f"Income: {description or category or 'cash receipt'}"[:255],
        [
            {"account": cash, "debit": value, "description": description},
            {"account": revenue, "credit": value, "description": description},
        ],
        reference=reference,
        created_by=created_by,
    )


@transaction.atomic
def post_expense(business, amount, *, date=None, description="", category="", reference=None, created_by=None):
    """Cash paid out: debit the mapped expense account, credit Cash."""
    existing = _existing_posting(business, reference)
    if existing is not None:
        return existing

    value = _positive_amount(amount)
    expense_account = resolve_account(business, expense_account_code(category))
    cash = resolve_account(business, AccountCodes.CASH)
    return post_entry(
        business,
        date or timezone.localdate(),
        f"Expense: {description or category or 'cash payment'}"[:255],
        [
            {"account": expense_account, "debit": value, "description": description},
            {"account": cash, "credit": value, "description": description},
        ],
        reference=reference,
        created_by=created_by,
    )


def invoice_reference(invoice) -> str:
    return f"invoice:{invoice.invoice_number}"


def invoice_payment_reference(invoice) -> str:
    return f"invoice:{invoice.invoice_number}:payment"


@transaction.atomic
def post_invoice_issued(invoice, *, created_by=None):
    if invoice.status == Invoice.Status.DRAFT:
        logger.info("Invoice %s is still a draft; nothing posted", invoice.invoice_number)
        return None

    reference = invoice_reference(invoice)
    existing = _existing_posting(invoice.business, reference)
    if existing is not None:
        return existing

    business = invoice.business
    total = _positive_amount(invoice.total)
    ar_account = resolve_account(business, AccountCodes.ACCOUNTS_RECEIVABLE)
    sales_account = resolve_account(business, AccountCodes.SALES_REVENUE)
    description = f"Invoice {invoice.invoice_number}"
    if invoice.customer_name:
        description = f"{description} - {invoice.customer_name}"
    return post_entry(
        business,
        invoice.issue_date,
        description[:255],
        [
            {"account": ar_account, "debit": total, "description": description},
            {"account": sales_account, "credit": total, "description": description},
        ],
        reference=reference,
        created_by=created_by,
    )


@transaction.atomic
def post_invoice_paid(invoice, *, created_by=None):
    if invoice.status != Invoice.Status.PAID or invoice.paid_date is None:
        logger.info("Invoice %s is not paid yet; no payment posted", invoice.invoice_number)
        return None

    reference = invoice_payment_reference(invoice)
    existing = _existing_posting(invoice.business, reference)
    if existing is not None:
        return existing

    business = invoice.business
    total = _positive_amount(invoice.total)
    bank_account = resolve_account(business, AccountCodes.BANK)
    ar_account = resolve_account(business, AccountCodes.ACCOUNTS_RECEIVABLE)
    description = f"Payment received - Invoice {invoice.invoice_number}"
    return post_entry(
        business,
        invoice.paid_date,
        description,
        [
            {"account": bank_account, "debit": total, "description": description},
            {"account": ar_account, "credit": total, "description": description},
        ],
        reference=reference,
        created_by=created_by,
    )


def post_canonical_event(kind, amount=None, business=None, **kwargs):
    """
    Post one of the recurring event shapes.

    INCOME and EXPENSE need ``amount`` and ``business``; the invoice kinds take
    the ``invoice`` keyword and post its total.
    """
    if kind == EventKind.INCOME:
        return post_income(business, amount, **kwargs)
    if kind == EventKind.EXPENSE:
        return post_expense(business, amount, **kwargs)
    if kind == EventKind.INVOICE_ISSUED:
        return post_invoice_issued(kwargs.pop("invoice"), **kwargs)
    if kind == EventKind.INVOICE_PAID:
        return post_invoice_paid(kwargs.pop("invoice"), **kwargs)
    raise LedgerError(f"Unknown event kind: {kind}", code="unknown_event")


def post_transaction_record(txn: Transaction, *, created_by=None):
    """Mirror a legacy income/expense record into the ledger."""
    poster = post_income if txn.type == Transaction.TransactionType.INCOME else post_expense
    return poster(
        txn.business,
        txn.amount,
        date=txn.date,
        description=txn.description,
        category=txn.category,
        reference=reference_for(txn),
        created_by=created_by,
    )


def post_expense_record(expense: Expense, *, created_by=None):
    if expense.status != Expense.Status.APPROVED:
        logger.info("Expense %s is %s; nothing posted", expense.pk, expense.status)
        return None
    return post_expense(
        expense.business,
        expense.amount,
        date=expense.date,
        description=expense.description or expense.vendor,
        category=expense.category,
        reference=reference_for(expense),
        created_by=created_by,
    )


@transaction.atomic
def approve_expense(expense: Expense, *, user=None):
    expense.status = Expense.Status.APPROVED
    expense.save(update_fields=["status"])
    return post_expense_record(expense, created_by=user)


def reject_expense(expense: Expense):
    expense.status = Expense.Status.REJECTED
    expense.save(update_fields=["status"])
    return expense


@transaction.atomic
def mark_invoice_sent(invoice: Invoice, *, user=None):
    invoice.status = Invoice.Status.SENT
    invoice.save(update_fields=["status"])
    return post_invoice_issued(invoice, created_by=user)


@transaction.atomic
def mark_invoice_paid(invoice: Invoice, paid_date=None, *, user=None):
    """
    Move an invoice to PAID and post the payment. An invoice that skipped SENT
    gets its receivable posted first so AR never goes negative.
    """
    invoice.status = Invoice.Status.PAID
    invoice.paid_date = paid_date or invoice.paid_date or timezone.localdate()
    invoice.save(update_fields=["status", "paid_date"])
    post_invoice_issued(invoice, created_by=user)
    return post_invoice_paid(invoice, created_by=user)
