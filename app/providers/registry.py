import logging
from typing import Dict, List

from app.providers.base import Provider
from app.services.errors import ProviderNotFoundError

logger = logging.getLogger("kubefoundry-api")


class ProviderRegistry:
    """Providers keyed by id, iterated in registration order.

    Populated once at startup and only read afterwards.
    """

    def __init__(self):
        self._providers: Dict[str, Provider] = {}

    def register(self, provider: Provider) -> None:
        if provider.id in self._providers:
            logger.warning(f"Replacing registered provider '{provider.id}'")
        self._providers[provider.id] = provider

    def get_provider(self, provider_id: str) -> Provider:
        if not isinstance(provider_id, str) or provider_id not in self._providers:
            raise ProviderNotFoundError(str(provider_id))
        return self._providers[provider_id]

    def has_provider(self, provider_id: str) -> bool:
        return isinstance(provider_id, str) and provider_id in self._providers

    def list_provider_ids(self) -> List[str]:
        return list(self._providers)

    def list_providers(self) -> List[Provider]:
        return list(self._providers.values())

    def default_namespaces(self) -> List[str]:
        """Distinct provider default namespaces, first occurrence wins the ordering"""
        namespaces: List[str] = []
        for provider in self._providers.values():
            if provider.default_namespace not in namespaces:
                namespaces.append(provider.default_namespace)
        return namespaces
