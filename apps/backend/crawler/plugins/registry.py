"""
Adapter registry: maps a sources.yaml section to its adapter class and
builds the run list for a worker cycle.
"""
import logging
from typing import Dict, List, Optional, Type

from core.net import SourceHTTPClient
from .base import SourceAdapter
from .corporate import CorporateCareersAdapter
from .fixture import FixtureAdapter
from .gupy import GupyAdapter
from .infojobs import InfoJobsAdapter
from .jsonld import JsonLdAdapter
from .stone import StoneAdapter
from .workday import WorkdayAdapter

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional['AdapterRegistry'] = None


class AdapterRegistry:
    """Registry of adapter classes keyed by config kind"""

    def __init__(self):
        self._adapters: Dict[str, Type[SourceAdapter]] = {}

    def register(self, adapter_cls: Type[SourceAdapter]):
        kind = adapter_cls.kind
        if kind in self._adapters:
            logger.warning(f"[registry] Adapter kind {kind} already registered, replacing")
        self._adapters[kind] = adapter_cls
        logger.debug(f"[registry] Registered adapter: {kind} -> {adapter_cls.__name__}")

    def get(self, kind: str) -> Optional[Type[SourceAdapter]]:
        return self._adapters.get(kind)

    def create(self, kind: str, config, client: Optional[SourceHTTPClient]) -> SourceAdapter:
        adapter_cls = self._adapters.get(kind)
        if adapter_cls is None:
            raise KeyError(f"No adapter registered for kind {kind!r}")
        return adapter_cls(config, client)

    def build_adapters(self, settings, client: SourceHTTPClient) -> List[SourceAdapter]:
        """
        Adapters for every configured source, in run order:
        infojobs, stone, workday, corporate careers, json-ld, gupy, fixtures.
        """
        sources = settings.sources
        adapters = [
            self.create("infojobs", sources.infojobs, client),
            self.create("stone", sources.stone, client),
            self.create("workday", sources.workday, client),
        ]
        adapters.extend(self.create("corporate_careers", c, client) for c in sources.corporate_careers)
        adapters.extend(self.create("json_ld", c, client) for c in sources.json_ld)
        adapters.extend(self.create("gupy", c, client) for c in sources.gupy)

        if settings.samples_path:
            adapters.append(self.create("fixtures", settings.samples_path, client))

        logger.info(f"[registry] Built {len(adapters)} adapters: {', '.join(a.name for a in adapters)}")
        return adapters

    def list_adapters(self) -> List[Dict]:
        return [
            {
                'kind': kind,
                'class': adapter_cls.__name__,
                'vendor_type': adapter_cls.vendor_type.value,
            }
            for kind, adapter_cls in self._adapters.items()
        ]


def get_adapter_registry() -> AdapterRegistry:
    """Get or create the global adapter registry"""
    global _registry
    if _registry is None:
        _registry = AdapterRegistry()
        _register_builtin_adapters(_registry)
    return _registry


def _register_builtin_adapters(registry: AdapterRegistry):
    for adapter_cls in (
        InfoJobsAdapter,
        StoneAdapter,
        WorkdayAdapter,
        CorporateCareersAdapter,
        JsonLdAdapter,
        GupyAdapter,
        FixtureAdapter,
    ):
        registry.register(adapter_cls)


def build_adapters(settings, client: SourceHTTPClient) -> List[SourceAdapter]:
    return get_adapter_registry().build_adapters(settings, client)
