from django.apps import AppConfig


class AccountingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.accounting'

    def ready(self):
        """Import signals when app is ready"""
        import backend.accounting.cache_signals  # noqa: F401  # Cache invalidation signals
