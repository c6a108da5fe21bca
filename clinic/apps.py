"""Application configuration for the clinic app."""

from __future__ import annotations

from django.apps import AppConfig


class ClinicConfig(AppConfig):
    """Custom AppConfig for the clinic application."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'clinic'
    verbose_name = 'Clinic'

    def ready(self) -> None:
        """Keep startup free of database access.

        Reminder and stock alert flows live in management commands so the
        application can boot in any context.
        """
        return None
