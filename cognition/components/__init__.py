"""
Optional analysis components.

Modules:
- capabilities: One capability interface and validation schema per category
- registry: Loading, certification and caching of components by name
"""

from cognition.components.capabilities import CAPABILITY_SCHEMAS, CapabilitySchema
from cognition.components.registry import AnalysisComponent, ComponentRegistry

__all__ = [
    "CAPABILITY_SCHEMAS",
    "AnalysisComponent",
    "CapabilitySchema",
    "ComponentRegistry",
]
