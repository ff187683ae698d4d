"""
Source adapter system.

Adapters turn one external job source into a stream of canonical postings:
- vendor-specific fetch and pagination
- parser selection
- detail-page budget
- field inference
"""

from .base import AdapterStats, SourceAdapter
from .registry import AdapterRegistry, build_adapters, get_adapter_registry

__all__ = [
    'AdapterStats',
    'SourceAdapter',
    'AdapterRegistry',
    'build_adapters',
    'get_adapter_registry'
]
