"""Provider registry: maps provider ids to provider constructors."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

import structlog

from modules.payments.dtos import PaymentProviderConfig
from modules.payments.errors import ProviderNotFound
from modules.payments.providers.base import PaymentProvider
from modules.payments.providers.paypal import PayPalProvider

logger = structlog.get_logger(__name__)

ProviderConstructor = Callable[[], PaymentProvider]

PROVIDER_REGISTRY: Dict[str, ProviderConstructor] = {
    "paypal": PayPalProvider,
}


class PaymentProviderFactory:
    def __init__(self, registry: Optional[Dict[str, ProviderConstructor]] = None) -> None:
        self._registry = dict(PROVIDER_REGISTRY if registry is None else registry)

    def create_provider(
        self, provider_id: str, config: PaymentProviderConfig
    ) -> PaymentProvider:
        constructor = self._registry.get((provider_id or "").lower())
        if constructor is None:
            raise ProviderNotFound(
                f"Payment provider '{provider_id}' not found. "
                f"Supported providers: {', '.join(self.get_supported_providers())}"
            )
        provider = constructor()
        provider.initialize(config)
        return provider

    def register_provider(self, provider_id: str, constructor: ProviderConstructor) -> None:
        self._registry[provider_id.lower()] = constructor
        logger.info("payment.provider_registered", provider_id=provider_id.lower())

    def get_supported_providers(self) -> List[str]:
        return sorted(self._registry)

    def is_provider_supported(self, provider_id: str) -> bool:
        return (provider_id or "").lower() in self._registry
