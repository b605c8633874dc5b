"""
Seed the default chart of accounts.

USAGE:
  Global chart shared by every business:
    python manage.py seed_chart_of_accounts

  Company-specific copy:
    python manage.py seed_chart_of_accounts --business-id 3
"""
from django.core.management.base import BaseCommand, CommandError

from core.accounting_defaults import ensure_default_accounts
from core.models import Business


class Command(BaseCommand):
    help = "Create any missing default accounts, globally or for one business."

    def add_arguments(self, parser):
        parser.add_argument(
            "--business-id",
            type=int,
            help="Seed a company-specific chart instead of the global one.",
        )

    def handle(self, *args, **options):
        business = None
        business_id = options.get("business_id")
        if business_id is not None:
            try:
                business = Business.objects.get(pk=business_id)
            except Business.DoesNotExist as exc:
                raise CommandError(f"Business {business_id} does not exist.") from exc

        accounts = ensure_default_accounts(business)
        scope = business.name if business else "global chart"
        self.stdout.write(self.style.SUCCESS(f"{len(accounts)} default accounts present for {scope}."))
