from django.apps import AppConfig


class HoldingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.holdings"
    # projects, SPVs and cap tables feed distribution snapshots
    verbose_name = "Projects & cap tables"
