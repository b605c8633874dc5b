from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, Sum
from django.db.models.functions import Length
from django.utils import timezone

from .exceptions import (
    AccountNotFoundError,
    AlreadyReversedError,
    DuplicateReferenceError,
    EntryNumberConflictError,
    LedgerError,
    UnbalancedEntryError,
)
from .models import Account, Business, JournalEntry, JournalLine, get_balance_tolerance

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ENTRY_NUMBER_PREFIX = "JE"
ENTRY_NUMBER_DIGITS = 6
DEFAULT_ENTRY_NUMBER_ATTEMPTS = 5


def to_amount(value) -> Decimal:
    """Coerce int/float/str/Decimal input to a cent-quantized Decimal."""
    if value in (None, ""):
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def reference_for(record) -> str:
    """Journal reference used to tie an entry back to the record that caused it."""
    return f"{record._meta.model_name}:{record.pk}"


def resolve_account(business, code: str) -> Account:
    """
    Look up an active account by code, preferring the business's own chart
    over the global one.
    """
    account = Account.objects.filter(business=business, code=code, is_active=True).first()
    if account is None:
        account = Account.objects.filter(business__isnull=True, code=code, is_active=True).first()
    if account is None:
        raise AccountNotFoundError(code)
    return account


def get_account_balance(account: Account, as_of: date | None = None) -> Decimal:
    """
    Compute the live balance for an account using all posted journal lines.
    Assets/Expenses return debit - credit; everything else uses credit - debit.
    """
    lines = JournalLine.objects.filter(account=account)
    if as_of is not None:
        lines = lines.filter(journal_entry__date__lte=as_of)
    agg = lines.aggregate(
        debit_sum=Sum("debit"),
        credit_sum=Sum("credit"),
    )
    return account.signed_amount(agg["debit_sum"] or ZERO, agg["credit_sum"] or ZERO)


def lock_business(business) -> Business:
    """
    Take the business row lock that serializes postings for one business.
    Held until the surrounding transaction ends.
    """
    return Business.objects.select_for_update().get(pk=business.pk)


def format_entry_number(year: int, sequence: int) -> str:
    return f"{ENTRY_NUMBER_PREFIX}-{year}-{sequence:0{ENTRY_NUMBER_DIGITS}d}"


def next_entry_number(business, entry_date: date) -> str:
    prefix = f"{ENTRY_NUMBER_PREFIX}-{entry_date.year}-"
    # Longer numbers sort first so sequences past the padding width stay ordered.
    last_number = (
        JournalEntry.objects.filter(business=business, entry_number__startswith=prefix)
        .order_by(Length("entry_number").desc(), "-entry_number")
        .values_list("entry_number", flat=True)
        .first()
    )
    sequence = 1
    if last_number:
        sequence = int(last_number.rsplit("-", 1)[1]) + 1
    return format_entry_number(entry_date.year, sequence)


def _prepare_lines(business, lines) -> list[dict]:
    if not lines:
        raise LedgerError("A journal entry needs at least one line.", code="empty_entry")

    prepared = []
    for index, line in enumerate(lines, start=1):
        account = line.get("account")
        if account is None:
            code = line.get("account_code")
            if not code:
                raise LedgerError(f"Line {index} has no account.", code="missing_account")
            account = resolve_account(business, code)
        elif account.business_id not in (None, business.id):
            raise LedgerError(
                f"Account {account.code} belongs to another business.",
                code="foreign_account",
            )

        debit = to_amount(line.get("debit"))
        credit = to_amount(line.get("credit"))
        if debit < 0 or credit < 0:
            raise LedgerError(f"Line {index} has a negative amount.", code="negative_amount")
        if debit == ZERO and credit == ZERO:
            raise LedgerError(f"Line {index} has no amount.", code="empty_line")

        prepared.append(
            {
                "line_number": index,
                "account": account,
                "debit": debit,
                "credit": credit,
                "description": line.get("description") or "",
            }
        )
    return prepared


def _write_entry(business, entry_number, entry_date, description, lines, reference, created_by, reversal_of):
    entry = JournalEntry.objects.create(
        business=business,
        entry_number=entry_number,
        date=entry_date,
        description=description,
        reference=reference,
        created_by=created_by,
        reversal_of=reversal_of,
    )
    for line in lines:
        JournalLine.objects.create(journal_entry=entry, **line)
    entry.check_balance()

    for line in lines:
        account = line["account"]
        Account.objects.filter(pk=account.pk).update(
            balance=F("balance") + account.signed_amount(line["debit"], line["credit"])
        )
    return entry


@transaction.atomic
def post_entry(
    business,
    date: date,
    description: str,
    lines,
    *,
    reference: str | None = None,
    created_by=None,
    reversal_of: JournalEntry | None = None,
) -> JournalEntry:
    """
    Post a balanced journal entry with its lines as one atomic unit.

    ``lines`` is a list of dicts with either ``account`` (an Account) or
    ``account_code``, plus ``debit``, ``credit`` and an optional ``description``.
    Nothing is written when the lines don't balance.
    """
    reference = reference or None
    prepared = _prepare_lines(business, lines)
    total_debit = sum((line["debit"] for line in prepared), ZERO)
    total_credit = sum((line["credit"] for line in prepared), ZERO)
    if abs(total_debit - total_credit) > get_balance_tolerance():
        raise UnbalancedEntryError(total_debit, total_credit)

    # Serializes numbering per business on backends that support row locks.
    lock_business(business)

    max_attempts = getattr(settings, "LEDGER_ENTRY_NUMBER_MAX_ATTEMPTS", DEFAULT_ENTRY_NUMBER_ATTEMPTS)
    for attempt in range(1, max_attempts + 1):
        entry_number = next_entry_number(business, date)
        try:
            with transaction.atomic():
                entry = _write_entry(
                    business,
                    entry_number,
                    date,
                    description,
                    prepared,
                    reference,
                    created_by,
                    reversal_of,
                )
        except IntegrityError as exc:
            if reference and reversal_of is None and posted_entry_for_reference(business, reference):
                raise DuplicateReferenceError(reference) from exc
            if not JournalEntry.objects.filter(business=business, entry_number=entry_number).exists():
                raise
            logger.warning(
                "Entry number %s already taken for business %s (attempt %d/%d)",
                entry_number,
                business.id,
                attempt,
                max_attempts,
            )
            continue

        logger.info(
            "Posted %s for business %s: %s (debits=%s, credits=%s)",
            entry.entry_number,
            business.id,
            description,
            total_debit,
            total_credit,
        )
        return entry

    raise EntryNumberConflictError(business.id, max_attempts)


def posted_entry_for_reference(business, reference: str) -> JournalEntry | None:
    """The live (POSTED, non-reversal) entry for ``reference``, if any."""
    if not reference:
        return None
    return (
        JournalEntry.objects.filter(
            business=business,
            reference=reference,
            status=JournalEntry.Status.POSTED,
            reversal_of__isnull=True,
        )
        .order_by("-id")
        .first()
    )


def find_entry_by_reference(business, reference: str) -> JournalEntry | None:
    """The original (non-reversal) entry posted for ``reference``, newest first."""
    return (
        JournalEntry.objects.filter(
            business=business,
            reference=reference,
            reversal_of__isnull=True,
        )
        .order_by("-id")
        .first()
    )


@transaction.atomic
def reverse_entry(entry: JournalEntry, *, reason: str = "", created_by=None, date: date | None = None) -> JournalEntry:
    """
    Post a new entry that swaps every debit and credit of ``entry`` and mark
    ``entry`` as REVERSED. The original lines are left untouched.
    """
    original = JournalEntry.objects.select_for_update().get(pk=entry.pk)
    if original.status == JournalEntry.Status.REVERSED:
        raise AlreadyReversedError(original.entry_number)

    description = f"Reversal of {original.entry_number}"
    if reason:
        description = f"{description}: {reason}"

    lines = [
        {
            "account": line.account,
            "debit": line.credit,
            "credit": line.debit,
            "description": f"Reversal: {line.description}" if line.description else "Reversal",
        }
        for line in original.lines.select_related("account").order_by("line_number")
    ]
    reversal = post_entry(
        original.business,
        date or timezone.localdate(),
        description[:255],
        lines,
        reference=f"REV-{original.entry_number}",
        created_by=created_by,
        reversal_of=original,
    )

    original.status = JournalEntry.Status.REVERSED
    original.save(update_fields=["status"])
    entry.status = original.status

    logger.info("Reversed %s with %s", original.entry_number, reversal.entry_number)
    return reversal


@transaction.atomic
def delete_with_reversal(source, *, actor=None) -> JournalEntry | None:
    """
    Delete a Transaction or Expense, reversing the journal entry posted for it.

    Records created before the ledger existed have no entry; those are simply
    deleted.
    """
    reference = reference_for(source)
    entry = posted_entry_for_reference(source.business, reference)

    reversal = None
    if entry is not None:
        reversal = reverse_entry(
            entry,
            reason=f"{source._meta.verbose_name} {source.pk} deleted",
            created_by=actor,
        )
    else:
        logger.info("No journal entry found for %s; deleting without reversal", reference)

    source.delete()
    return reversal


def rebuild_account_balances(business) -> int:
    """
    Recompute the cached balance of every account used by ``business``.

    Global accounts are shared, so their cache covers every business's lines.
    """
    updated = 0
    accounts = Account.objects.filter(journal_lines__journal_entry__business=business).distinct()
    for account in accounts:
        balance = get_account_balance(account)
        if account.balance != balance:
            account.balance = balance
            account.save(update_fields=["balance"])
            updated += 1
    return updated


def business_account_balance(business, account: Account, as_of: date | None = None) -> Decimal:
    lines = JournalLine.objects.filter(account=account, journal_entry__business=business)
    if as_of is not None:
        lines = lines.filter(journal_entry__date__lte=as_of)
    agg = lines.aggregate(debit_sum=Sum("debit"), credit_sum=Sum("credit"))
    return account.signed_amount(agg["debit_sum"] or ZERO, agg["credit_sum"] or ZERO)


def unbalanced_entries(business):
    """Yield posted entries whose lines no longer balance."""
    for entry in JournalEntry.objects.filter(business=business).order_by("date", "id"):
        try:
            entry.check_balance()
        except ValidationError as exc:
            yield entry, exc
