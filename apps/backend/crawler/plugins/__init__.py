"""
Source connector system.

Connectors provide source-specific listing and detail logic, allowing for:
- JSON API polling (Workday CXS)
- Browser automation for legacy portals (PeopleSoft)
- Per-employer configuration from config/employers.yaml
"""

from .base import SourceConnector
from .registry import ConnectorRegistry, get_connector_registry, create_connector

__all__ = [
    'SourceConnector',
    'ConnectorRegistry',
    'get_connector_registry',
    'create_connector'
]
