from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .accounting_defaults import ensure_default_accounts
from .models import Business


@receiver(post_save, sender=Business)
def seed_chart_on_business_create(sender, instance, created, raw, **kwargs):
    if raw or not created:
        return
    if not getattr(settings, "LEDGER_SEED_CHART_ON_BUSINESS_CREATE", False):
        return
    ensure_default_accounts(instance)
