from django.db import migrations


GLOBAL_ACCOUNTS = [
    ("1000", "Cash", "ASSET"),
    ("1100", "Bank", "ASSET"),
    ("1200", "Accounts Receivable", "ASSET"),
    ("2000", "Accounts Payable", "LIABILITY"),
    ("3000", "Retained Earnings", "EQUITY"),
    ("4000", "Sales Revenue", "REVENUE"),
    ("4100", "Service Revenue", "REVENUE"),
    ("4900", "Other Income", "REVENUE"),
    ("5000", "Operating Expenses", "EXPENSE"),
    ("5100", "Salaries and Wages", "EXPENSE"),
    ("5200", "Rent", "EXPENSE"),
    ("5300", "Utilities", "EXPENSE"),
    ("5900", "Other Expenses", "EXPENSE"),
]


def seed_global_chart(apps, schema_editor):
    Account = apps.get_model("core", "Account")

    for code, name, acc_type in GLOBAL_ACCOUNTS:
        account, created = Account.objects.get_or_create(
            business=None,
            code=code,
            defaults={
                "name": name,
                "type": acc_type,
            },
        )
        if not created and (account.name != name or account.type != acc_type):
            account.name = name
            account.type = acc_type
            account.save(update_fields=["name", "type"])


def unseed_global_chart(apps, schema_editor):
    Account = apps.get_model("core", "Account")
    Account.objects.filter(
        business__isnull=True,
        code__in=[code for code, _, _ in GLOBAL_ACCOUNTS],
        journal_lines__isnull=True,
    ).delete()


class Migration(migrations.Migration):

    dependencies = [
        ("core", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            code=seed_global_chart,
            reverse_code=unseed_global_chart,
        ),
    ]
