"""
Provider registry: named adapter lookup and best-available selection.

Adapters are built fresh from the current settings on every lookup, so a
configuration change (credentials, enable flag) takes effect on the next
worker pass without restarting.
"""
from typing import Any, Callable, Dict, List, Optional

import httpx

from photo2video.config import Settings, get_settings
from photo2video.services.providers.backup import BackupAdapter
from photo2video.services.providers.base import VideoProvider
from photo2video.services.providers.kling import KlingAdapter
from photo2video.services.storage import LocalStorage

ProviderFactory = Callable[[Settings], VideoProvider]

PRIMARY_PROVIDER = "kling"
FALLBACK_PROVIDER = "backup"


class NoProviderAvailableError(RuntimeError):
    pass


class ProviderRegistry:

    def __init__(self, settings_factory: Callable[[], Settings] = get_settings):
        self._settings_factory = settings_factory
        self._factories: Dict[str, ProviderFactory] = {}

    @classmethod
    def default(
        cls,
        settings_factory: Callable[[], Settings] = get_settings,
        http_client: Optional[httpx.AsyncClient] = None,
        storage: Optional[LocalStorage] = None,
    ) -> "ProviderRegistry":
        """Registry with the Kling adapter as primary and the backup adapter as fallback"""
        registry = cls(settings_factory)
        registry.register(PRIMARY_PROVIDER, lambda s: KlingAdapter(s, client=http_client))
        registry.register(FALLBACK_PROVIDER, lambda s: BackupAdapter(s, storage=storage))
        return registry

    def register(self, name: str, factory: ProviderFactory) -> None:
        self._factories[name.lower()] = factory

    def available_providers(self) -> List[str]:
        return list(self._factories)

    def get_provider(self, name: Optional[str]) -> Optional[VideoProvider]:
        if not name:
            return None
        factory = self._factories.get(name.lower())
        if factory is None:
            return None
        return factory(self._settings_factory())

    def get_best_provider(self, preferred: Optional[str] = None) -> VideoProvider:
        """preferred (if enabled) → primary (if enabled) → fallback"""
        if preferred:
            provider = self.get_provider(preferred)
            if provider is not None and provider.is_enabled():
                return provider

        primary = self.get_provider(PRIMARY_PROVIDER)
        if primary is not None and primary.is_enabled():
            return primary

        fallback = self.get_provider(FALLBACK_PROVIDER)
        if fallback is not None:
            return fallback

        raise NoProviderAvailableError("No video generation provider available")

    def get_provider_by_task_id(self, task_id: Optional[str]) -> Optional[VideoProvider]:
        """
        Infer the owning adapter from the task id prefix.

        Only for resuming jobs whose provider name no longer resolves;
        the provider stored on the job is the primary lookup.
        """
        if not task_id:
            return None
        for name in self._factories:
            provider = self.get_provider(name)
            if provider is not None and provider.owns_task(task_id):
                return provider
        return None

    def default_provider_name(self) -> str:
        name = self._settings_factory().video_provider
        provider = self.get_provider(name)
        if provider is None or not provider.is_enabled():
            return FALLBACK_PROVIDER
        return provider.name

    def has_available_provider(self) -> bool:
        return any(self.get_provider(name).is_enabled() for name in self._factories)

    def provider_status(self) -> Dict[str, Dict[str, Any]]:
        return {name: self.get_provider(name).describe() for name in self._factories}
