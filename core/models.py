from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from .exceptions import UnbalancedEntryError

if TYPE_CHECKING:
    from django.db.models import Manager


BALANCE_TOLERANCE = Decimal("0.01")


def get_balance_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, "LEDGER_BALANCE_TOLERANCE", BALANCE_TOLERANCE)))


class Business(models.Model):
    name = models.CharField(max_length=255, unique=True)
    currency = models.CharField(max_length=3, default="USD")
    owner_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="businesses",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    if TYPE_CHECKING:
        id: int
        accounts: Manager["Account"]
        journal_entries: Manager["JournalEntry"]


class Account(models.Model):
    class AccountType(models.TextChoices):
        ASSET = "ASSET", "Asset"
        LIABILITY = "LIABILITY", "Liability"
        EQUITY = "EQUITY", "Equity"
        REVENUE = "REVENUE", "Revenue"
        EXPENSE = "EXPENSE", "Expense"

    DEBIT_NORMAL_TYPES = (AccountType.ASSET, AccountType.EXPENSE)

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="accounts",
        null=True,
        blank=True,
        help_text="Leave empty for a global account shared by every business.",
    )
    code = models.CharField(
        max_length=20,
        help_text="Chart code like 1000, 4000, 5100.",
    )
    name = models.CharField(max_length=255)
    type = models.CharField(
        max_length=10,
        choices=AccountType.choices,
    )
    is_active = models.BooleanField(default=True)
    description = models.TextField(blank=True)
    balance = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Cached running balance. Posted journal lines are the source of truth.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Account"
        verbose_name_plural = "Accounts"
        ordering = ["code", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "code"],
                name="unique_account_code_per_business",
            ),
            models.UniqueConstraint(
                fields=["code"],
                condition=Q(business__isnull=True),
                name="unique_global_account_code",
            ),
        ]

    def __str__(self):
        return f"{self.code} {self.name}"

    @property
    def is_global(self) -> bool:
        return self.business_id is None

    @property
    def is_debit_normal(self) -> bool:
        return self.type in self.DEBIT_NORMAL_TYPES

    def signed_amount(self, debit, credit) -> Decimal:
        """Net movement of a debit/credit pair on this account's normal side."""
        debit = debit or Decimal("0.00")
        credit = credit or Decimal("0.00")
        if self.is_debit_normal:
            return debit - credit
        return credit - debit

    if TYPE_CHECKING:
        id: int
        business_id: Optional[int]
        journal_lines: Manager["JournalLine"]


class JournalEntry(models.Model):
    class Status(models.TextChoices):
        POSTED = "POSTED", "Posted"
        REVERSED = "REVERSED", "Reversed"

    MUTABLE_FIELDS = frozenset({"status"})

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="journal_entries",
    )
    entry_number = models.CharField(max_length=32)
    date = models.DateField(db_index=True)
    description = models.CharField(max_length=255)
    reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Originating business record, e.g. 'expense:42' or 'invoice:INV-001'.",
    )
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.POSTED,
        db_index=True,
    )
    reversal_of = models.OneToOneField(
        "self",
        on_delete=models.RESTRICT,
        null=True,
        blank=True,
        related_name="reversal",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]
        verbose_name_plural = "Journal entries"
        constraints = [
            models.UniqueConstraint(
                fields=["business", "entry_number"],
                name="unique_entry_number_per_business",
            ),
            models.UniqueConstraint(
                fields=["business", "reference"],
                condition=Q(status="POSTED", reversal_of__isnull=True),
                name="unique_live_reference_per_business",
            ),
        ]

    def __str__(self):
        return f"{self.entry_number} {self.date} {self.description}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or not set(update_fields) <= self.MUTABLE_FIELDS:
                raise ValidationError(
                    "Posted journal entries are immutable; post a reversing entry instead."
                )
        super().save(*args, **kwargs)

    def totals(self) -> tuple[Decimal, Decimal]:
        totals = self.lines.aggregate(
            total_debit=models.Sum("debit"),
            total_credit=models.Sum("credit"),
        )
        return (
            totals["total_debit"] or Decimal("0.00"),
            totals["total_credit"] or Decimal("0.00"),
        )

    def check_balance(self):
        total_debit, total_credit = self.totals()
        if abs(total_debit - total_credit) > get_balance_tolerance():
            raise UnbalancedEntryError(total_debit, total_credit)
        if total_debit == Decimal("0.00"):
            raise ValidationError("Journal entry has no value.")

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    if TYPE_CHECKING:
        id: int
        reversal_of_id: Optional[int]
        lines: Manager["JournalLine"]


class JournalLine(models.Model):
    journal_entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="journal_lines",
    )
    line_number = models.PositiveIntegerField()
    debit = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["line_number", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(debit__gte=0) & models.Q(credit__gte=0),
                name="jl_non_negative",
            ),
            models.UniqueConstraint(
                fields=["journal_entry", "line_number"],
                name="unique_line_number_per_entry",
            ),
        ]

    def __str__(self):
        return f"{self.line_number}: {self.account} Dr {self.debit} Cr {self.credit}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Journal lines cannot be edited once posted.")
        super().save(*args, **kwargs)

    if TYPE_CHECKING:
        id: int
        account_id: int
        journal_entry_id: int


class Transaction(models.Model):
    """Pre-ledger income/expense record kept for legacy reporting."""

    class TransactionType(models.TextChoices):
        INCOME = "INCOME", "Income"
        EXPENSE = "EXPENSE", "Expense"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="transactions",
    )
    type = models.CharField(max_length=10, choices=TransactionType.choices)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.COMPLETED,
    )
    amount = models.DecimalField(max_digits=19, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=100, blank=True)
    date = models.DateField(db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} on {self.date}"


class Expense(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="expenses",
    )
    description = models.CharField(max_length=255, blank=True)
    vendor = models.CharField(max_length=255, blank=True)
    category = models.CharField(max_length=100, blank=True)
    amount = models.DecimalField(max_digits=19, decimal_places=2)
    date = models.DateField(db_index=True)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]

    def __str__(self):
        return f"Expense {self.amount} on {self.date}"

    if TYPE_CHECKING:
        id: int
        matched_bank_transactions: Manager["BankTransaction"]


class Invoice(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        PAID = "PAID", "Paid"

    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="invoices",
    )
    invoice_number = models.CharField(max_length=50)
    customer_name = models.CharField(max_length=255, blank=True)
    issue_date = models.DateField()
    due_date = models.DateField(null=True, blank=True)
    paid_date = models.DateField(null=True, blank=True)
    total = models.DecimalField(max_digits=19, decimal_places=2)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-issue_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "invoice_number"],
                name="unique_invoice_number_per_business",
            )
        ]

    def __str__(self):
        return f"Invoice {self.invoice_number}"

    if TYPE_CHECKING:
        id: int
        matched_bank_transactions: Manager["BankTransaction"]


class BankAccount(models.Model):
    business = models.ForeignKey(
        "core.Business",
        on_delete=models.CASCADE,
        related_name="bank_accounts",
    )
    name = models.CharField(
        max_length=255,
        help_text="e.g. 'Chase Business Checking'",
    )
    bank_name = models.CharField(max_length=255, blank=True)
    account = models.OneToOneField(
        "core.Account",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bank_account",
        help_text="Ledger account this bank account feeds (optional).",
    )
    balance = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Running balance as reported by the bank.",
    )
    last_reconciled = models.DateTimeField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
        constraints = [
            models.UniqueConstraint(
                fields=["business", "name"],
                name="unique_bank_account_name_per_business",
            )
        ]

    def __str__(self):
        return self.name

    if TYPE_CHECKING:
        id: int
        bank_transactions: Manager["BankTransaction"]
        reconciliations: Manager["BankReconciliation"]


class BankTransaction(models.Model):
    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.CASCADE,
        related_name="bank_transactions",
    )
    date = models.DateField(db_index=True)
    description = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(
        max_digits=19,
        decimal_places=2,
        help_text="Signed: positive is a deposit, negative is a withdrawal.",
    )
    debit = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    credit = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    external_id = models.CharField(max_length=255, blank=True)
    reconciled = models.BooleanField(default=False, db_index=True)
    reconciled_at = models.DateTimeField(null=True, blank=True)
    reconciled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    matched_expense = models.ForeignKey(
        Expense,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="matched_bank_transactions",
    )
    matched_invoice = models.ForeignKey(
        Invoice,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="matched_bank_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["date", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(matched_expense__isnull=True) | Q(matched_invoice__isnull=True),
                name="bank_txn_single_match",
            ),
        ]

    def __str__(self):
        return f"{self.date} {self.description} {self.amount}"

    def save(self, *args, **kwargs):
        if not self.debit and not self.credit and self.amount:
            amount = Decimal(str(self.amount))
            if amount < 0:
                self.debit = -amount
            else:
                self.credit = amount
        super().save(*args, **kwargs)

    @property
    def is_deposit(self) -> bool:
        return self.amount > 0

    @property
    def is_withdrawal(self) -> bool:
        return self.amount < 0

    if TYPE_CHECKING:
        id: int
        matched_expense_id: Optional[int]
        matched_invoice_id: Optional[int]


class BankReconciliation(models.Model):
    class Status(models.TextChoices):
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        COMPLETED = "COMPLETED", "Completed"

    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.CASCADE,
        related_name="reconciliations",
    )
    start_date = models.DateField()
    end_date = models.DateField()
    opening_balance = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    closing_balance = models.DecimalField(max_digits=19, decimal_places=2, default=Decimal("0.00"))
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.IN_PROGRESS,
    )
    reconciled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-end_date", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["bank_account", "start_date", "end_date"],
                name="uniq_reconciliation_per_period",
            )
        ]

    def __str__(self):
        return f"{self.bank_account.name} {self.start_date} to {self.end_date}"

    def period_transactions(self):
        return self.bank_account.bank_transactions.filter(
            date__gte=self.start_date,
            date__lte=self.end_date,
        )
