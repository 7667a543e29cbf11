"""Wiring for the long-lived service objects shared by every request."""

import logging
from dataclasses import dataclass
from typing import Any

from reelhub.api.websocket import manager as ws_manager
from reelhub.config import Settings
from reelhub.core.errors import ReelhubError
from reelhub.providers.registry import ProviderRegistry
from reelhub.services.aggregator import Aggregator
from reelhub.services.config_service import ConfigService
from reelhub.services.event_broadcaster import EventBroadcaster
from reelhub.services.fetcher import Fetcher
from reelhub.services.probe import ProbeEngine
from reelhub.services.resolver import Resolver
from reelhub.services.scoring import ScoringEngine
from reelhub.services.session_state_machine import PlaybackSession
from reelhub.services.stream_pipeline import StreamPipeline
from reelhub.storage.base import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: ProgressStore
    fetcher: Fetcher
    config: ConfigService
    registry: ProviderRegistry
    aggregator: Aggregator
    resolver: Resolver
    pipeline: StreamPipeline
    broadcaster: EventBroadcaster

    def new_session(self, user: str | None = None) -> PlaybackSession:
        return PlaybackSession(
            self.resolver,
            self.store,
            user=user,
            broadcaster=self.broadcaster,
            auto_advance_delay=self.settings.auto_advance_delay,
        )

    async def close(self) -> None:
        await self.fetcher.aclose()
        await self.store.close()


async def register_owner(settings: Settings, store: ProgressStore) -> None:
    """Make sure the configured site owner exists in the store."""
    if not (settings.owner_username and settings.owner_password):
        return
    try:
        if not await store.check_user_exist(settings.owner_username):
            await store.register_user(settings.owner_username, settings.owner_password)
            logger.info(f"Registered site owner {settings.owner_username}")
    except ReelhubError as e:
        logger.error(f"Failed to register site owner: {e}")


async def build_services(
    settings: Settings,
    store: ProgressStore,
    fetcher: Fetcher | None = None,
    file_config: dict[str, Any] | None = None,
    broadcaster: EventBroadcaster | None = None,
) -> Services:
    """Initialize the store and build every service on top of it.

    Args:
        settings: Server settings
        store: Progress store (not yet initialized)
        fetcher: Outbound fetcher; a new one is created from settings when None
        file_config: Pre-parsed source config instead of reading ``settings.config_file``
        broadcaster: Event broadcaster; defaults to the shared WebSocket manager
    """
    await store.init()
    await register_owner(settings, store)

    if fetcher is None:
        fetcher = Fetcher(user_agent=settings.user_agent, timeout=settings.provider_timeout)

    config = ConfigService(settings, store, file_config=file_config)
    await config.load()

    registry = ProviderRegistry(config, fetcher, settings)
    aggregator = Aggregator(config, registry, store, provider_timeout=settings.provider_timeout)
    probe = ProbeEngine(
        fetcher, timeout=settings.probe_timeout, sample_bytes=settings.probe_sample_bytes
    )
    resolver = Resolver(aggregator, probe, ScoringEngine(), store, registry)

    return Services(
        settings=settings,
        store=store,
        fetcher=fetcher,
        config=config,
        registry=registry,
        aggregator=aggregator,
        resolver=resolver,
        pipeline=StreamPipeline(fetcher),
        broadcaster=broadcaster or EventBroadcaster(ws_manager),
    )
