"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.store import create_state_store
from services.github import GitHubReleaseClient
from services.deployment import DeployWebhook, TagMonitor, ScheduledCheckTrigger


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (only started when STORE_BACKEND=sqlite)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # State store; resolves to None when no store is bound
    store = providers.Singleton(
        create_state_store,
        settings=settings,
        database=database
    )

    # Outbound clients
    github_client = providers.Singleton(
        GitHubReleaseClient,
        settings=settings
    )

    deploy_webhook = providers.Singleton(
        DeployWebhook,
        settings=settings
    )

    # Orchestration
    tag_monitor = providers.Singleton(
        TagMonitor,
        store=store,
        github=github_client,
        webhook=deploy_webhook,
        settings=settings
    )

    check_trigger = providers.Singleton(
        ScheduledCheckTrigger,
        monitor=tag_monitor,
        settings=settings
    )


# Global container instance
container = Container()
