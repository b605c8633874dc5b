"""
Post journal entries for records created before the ledger existed.

Covers completed income/expense transactions, approved expenses, sent
invoices and the payment of paid invoices. Records that already have an
entry are skipped, so the command can be run repeatedly.
"""
import logging

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from core.accounting_posting import (
    post_expense_record,
    post_invoice_issued,
    post_invoice_paid,
    post_transaction_record,
)
from core.exceptions import LedgerError
from core.models import Business, Expense, Invoice, JournalEntry, Transaction

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Mirror legacy transactions, expenses and invoices into the journal."

    def add_arguments(self, parser):
        parser.add_argument("--business-id", type=int, help="Only migrate this business.")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Roll back everything after reporting what would be created.",
        )

    def handle(self, *args, **options):
        businesses = Business.objects.all()
        if options.get("business_id") is not None:
            businesses = businesses.filter(pk=options["business_id"])
            if not businesses.exists():
                raise CommandError(f"Business {options['business_id']} does not exist.")

        created = 0
        errors = 0
        with transaction.atomic():
            for business in businesses:
                business_created, business_errors = self._migrate_business(business)
                created += business_created
                errors += business_errors
            if options["dry_run"]:
                transaction.set_rollback(True)

        prefix = "[dry run] " if options["dry_run"] else ""
        message = f"{prefix}Created {created} journal entries ({errors} errors)."
        if errors:
            self.stdout.write(self.style.WARNING(message))
        else:
            self.stdout.write(self.style.SUCCESS(message))

    def _migrate_business(self, business):
        created = 0
        errors = 0

        postings = []
        for txn in Transaction.objects.filter(business=business, status=Transaction.Status.COMPLETED):
            postings.append((txn, post_transaction_record))
        for expense in Expense.objects.filter(business=business, status=Expense.Status.APPROVED):
            postings.append((expense, post_expense_record))
        for invoice in Invoice.objects.filter(business=business).exclude(status=Invoice.Status.DRAFT):
            postings.append((invoice, post_invoice_issued))
            if invoice.status == Invoice.Status.PAID and invoice.paid_date:
                postings.append((invoice, post_invoice_paid))

        for record, post in postings:
            before = JournalEntry.objects.filter(business=business).count()
            try:
                with transaction.atomic():
                    post(record)
            except LedgerError as exc:
                errors += 1
                logger.error("Could not migrate %s %s: %s", record._meta.model_name, record.pk, "; ".join(exc.messages))
                continue
            if JournalEntry.objects.filter(business=business).count() > before:
                created += 1

        logger.info("Migrated business %s: %d created, %d errors", business.id, created, errors)
        return created, errors
