"""Deferred construction of the generation client.

Importing this module does not import the provider SDK; the client module is
imported and a client constructed only on the first ``get``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from report_assist.models.generation_models import ClientConfig

if TYPE_CHECKING:
    from report_assist.services.generation_client import GenerationClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClientConfig | None], "GenerationClient"]


def _default_factory(config: ClientConfig | None) -> GenerationClient:
    from report_assist.services.generation_client import GenerationClient

    return GenerationClient(config)


class ClientCache:
    """Memoizes a single client. Config is honored on the first ``get`` only."""

    def __init__(self, factory: ClientFactory | None = None):
        self._factory = factory or _default_factory
        self._instance: GenerationClient | None = None

    def get(self, config: ClientConfig | None = None) -> GenerationClient:
        if self._instance is None:
            logger.info("Loading generation client")
            self._instance = self._factory(config)
        elif config is not None:
            logger.debug("Generation client already loaded; ignoring new config")
        return self._instance

    @property
    def is_loaded(self) -> bool:
        return self._instance is not None

    def reset(self) -> None:
        self._instance = None


default_cache = ClientCache()


def get_client(config: ClientConfig | None = None) -> GenerationClient:
    return default_cache.get(config)


def is_client_loaded() -> bool:
    return default_cache.is_loaded


def reset_client() -> None:
    """Forget the memoized client. Test isolation only."""
    default_cache.reset()
