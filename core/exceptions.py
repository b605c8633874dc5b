from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError


class LedgerError(ValidationError):
    """
    A ledger operation that cannot be completed as requested.

    The caller has to fix its input (or the chart of accounts) before trying
    again; retrying the same call will fail the same way.
    """

    status_code = 400
    default_code = "ledger_error"

    def __init__(self, message, code=None, params=None):
        super().__init__(message, code=code or self.default_code, params=params)


class UnbalancedEntryError(LedgerError):
    default_code = "unbalanced_entry"

    def __init__(self, total_debit: Decimal, total_credit: Decimal):
        self.total_debit = total_debit
        self.total_credit = total_credit
        super().__init__(
            f"Unbalanced journal entry (debits={total_debit}, credits={total_credit})."
        )


class AccountNotFoundError(LedgerError):
    default_code = "account_not_found"

    def __init__(self, code: str):
        self.account_code = code
        super().__init__(f"Account with code {code} not found in the chart of accounts.")


class AlreadyReversedError(LedgerError):
    status_code = 409
    default_code = "already_reversed"

    def __init__(self, entry_number: str):
        self.entry_number = entry_number
        super().__init__(f"Journal entry {entry_number} has already been reversed.")


class DuplicateReferenceError(LedgerError):
    status_code = 409
    default_code = "duplicate_reference"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"A posted journal entry already carries reference {reference}.")


class SessionStateError(LedgerError):
    status_code = 409
    default_code = "invalid_session_state"

    def __init__(self, status: str, message: str | None = None):
        self.status = status
        super().__init__(message or f"Reconciliation session is {status}; expected IN_PROGRESS.")


class LedgerStorageError(Exception):
    """The store could not complete the write; safe to retry later."""

    status_code = 503


class EntryNumberConflictError(LedgerStorageError):
    def __init__(self, business_id: int, attempts: int):
        self.business_id = business_id
        self.attempts = attempts
        super().__init__(
            f"Could not assign a journal entry number for business {business_id} "
            f"after {attempts} attempts."
        )
