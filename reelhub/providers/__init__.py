"""Upstream content providers."""

from reelhub.providers.audiobook import AudiobookCatalog
from reelhub.providers.base import Provider
from reelhub.providers.cms import CmsProvider
from reelhub.providers.registry import ProviderRegistry

__all__ = ["Provider", "CmsProvider", "AudiobookCatalog", "ProviderRegistry"]
