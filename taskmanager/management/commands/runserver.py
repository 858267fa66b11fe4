import logging

from django.conf import settings
from django.core.management.commands.runserver import Command as RunserverCommand

logger = logging.getLogger(__name__)


class Command(RunserverCommand):
    """`runserver` listening on TASKMANAGER_PORT unless an address is given."""

    default_port = str(settings.TASKMANAGER.port)

    def inner_run(self, *args, **options):
        logger.info("Frontend URL: %s", settings.CORS_ALLOWED_ORIGIN)
        logger.info("Environment: %s", settings.TASKMANAGER.environment)
        return super().inner_run(*args, **options)
