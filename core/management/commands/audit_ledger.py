"""
Check posted journal entries and cached account balances.

USAGE:
    python manage.py audit_ledger
    python manage.py audit_ledger --business-id 3 --fix
"""
from django.core.management.base import BaseCommand

from core.ledger_services import (
    get_account_balance,
    rebuild_account_balances,
    unbalanced_entries,
)
from core.models import Account, Business


class Command(BaseCommand):
    help = "Report unbalanced entries and stale cached balances."

    def add_arguments(self, parser):
        parser.add_argument("--business-id", type=int, help="Only audit this business.")
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Rebuild cached account balances from posted lines.",
        )

    def handle(self, *args, **options):
        businesses = Business.objects.all()
        if options.get("business_id") is not None:
            businesses = businesses.filter(pk=options["business_id"])

        problems = 0
        for business in businesses:
            for entry, exc in unbalanced_entries(business):
                problems += 1
                self.stdout.write(self.style.ERROR(f"{business.name}: {entry.entry_number} {'; '.join(exc.messages)}"))

            accounts = Account.objects.filter(journal_lines__journal_entry__business=business).distinct()
            for account in accounts:
                expected = get_account_balance(account)
                if account.balance != expected:
                    problems += 1
                    self.stdout.write(
                        self.style.WARNING(
                            f"{business.name}: account {account.code} cached {account.balance}, posted {expected}"
                        )
                    )

            if options["fix"]:
                fixed = rebuild_account_balances(business)
                if fixed:
                    self.stdout.write(f"{business.name}: rebuilt {fixed} cached balances")

        if problems:
            self.stdout.write(self.style.WARNING(f"{problems} problems found."))
        else:
            self.stdout.write(self.style.SUCCESS("Ledger is consistent."))
