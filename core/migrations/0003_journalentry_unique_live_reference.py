from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("core", "0002_seed_global_chart_of_accounts"),
    ]

    operations = [
        migrations.AddConstraint(
            model_name="journalentry",
            constraint=models.UniqueConstraint(
                condition=models.Q(status="POSTED", reversal_of__isnull=True),
                fields=("business", "reference"),
                name="unique_live_reference_per_business",
            ),
        ),
    ]
