"""
pronlab/adapters/registry.py
=============================
Adapter Registry - PronLab

An explicit name → adapter mapping. It is built once at startup by
``build_registry`` and handed to the lab and API by reference; there is
no module-level registry, so tests can build one from mock adapters.
"""

import logging
from typing import Iterator

from pronlab.adapters.azure import AzureAdapter
from pronlab.adapters.base import VendorAdapter
from pronlab.adapters.generic import GenericJSONAdapter
from pronlab.adapters.speechsuper import SpeechSuperAdapter
from pronlab.config import Settings

logger = logging.getLogger("pronlab.adapters.registry")


class AdapterRegistry:
    def __init__(self, adapters: list[VendorAdapter] | None = None):
        self._adapters: dict[str, VendorAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: VendorAdapter) -> None:
        """
        Add an adapter under its ``name``.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        name = getattr(adapter, "name", "")
        if not name:
            raise ValueError("Adapter must have a non-empty name.")
        if name in self._adapters:
            raise ValueError(f"Adapter '{name}' is already registered.")
        self._adapters[name] = adapter
        logger.info("Registered API: %s", name)

    def get(self, name: str) -> VendorAdapter:
        """Raises KeyError for an unknown vendor."""
        return self._adapters[name]

    def names(self) -> list[str]:
        return list(self._adapters)

    def subset(self, names: list[str]) -> "AdapterRegistry":
        """
        Registry holding only ``names``, in the given order.

        Raises:
            KeyError: If any name is not registered.
        """
        selected = AdapterRegistry()
        selected._adapters = {n: self.get(n) for n in names}
        return selected

    def items(self):
        return self._adapters.items()

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __iter__(self) -> Iterator[VendorAdapter]:
        return iter(self._adapters.values())

    def __len__(self) -> int:
        return len(self._adapters)


def build_registry(settings: Settings) -> AdapterRegistry:
    """Register every vendor whose credentials are configured."""
    registry = AdapterRegistry()

    if settings.azure_key:
        registry.register(AzureAdapter(
            settings.azure_key, settings.azure_region, timeout=settings.request_timeout,
        ))
    if settings.speechsuper_key:
        registry.register(SpeechSuperAdapter(
            settings.speechsuper_key, settings.speechsuper_app_id, timeout=settings.request_timeout,
        ))
    if settings.generic_endpoint:
        registry.register(GenericJSONAdapter(
            settings.generic_name,
            settings.generic_key,
            settings.generic_endpoint,
            timeout=settings.request_timeout,
        ))

    if not len(registry):
        logger.warning("No vendor credentials configured - registry is empty.")
    return registry
