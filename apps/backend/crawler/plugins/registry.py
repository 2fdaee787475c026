"""
Connector registry: maps connector names from employer config to classes.
"""
import logging
from typing import List, Dict, Optional, Type

from core.errors import ConfigError
from .base import SourceConnector

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional['ConnectorRegistry'] = None


class ConnectorRegistry:
    """Registry for source connector classes"""

    def __init__(self):
        self._connectors: List[Dict] = []
        self._connectors_by_name: Dict[str, Type[SourceConnector]] = {}

    def register(self, name: str, connector_cls: Type[SourceConnector], priority: int = 50):
        """Register a connector class under a name"""
        if name in self._connectors_by_name:
            logger.warning(f"Connector {name} already registered, replacing")
            self._connectors = [c for c in self._connectors if c['name'] != name]

        self._connectors_by_name[name] = connector_cls
        self._connectors.append({'name': name, 'priority': priority, 'class': connector_cls})

        # Sort by priority (higher first)
        self._connectors.sort(key=lambda c: c['priority'], reverse=True)

        logger.debug(f"Registered connector: {name} (priority={priority})")

    def get_connector(self, name: str) -> Optional[Type[SourceConnector]]:
        """Get connector class by name"""
        return self._connectors_by_name.get(name)

    def create(self, config, settings=None, **kwargs) -> SourceConnector:
        """
        Instantiate the connector named by an employer config.

        Raises:
            ConfigError: if no connector is registered under config.connector
        """
        connector_cls = self.get_connector(config.connector)
        if connector_cls is None:
            raise ConfigError(f"No connector registered for '{config.connector}'")
        return connector_cls(config, settings=settings, **kwargs)

    def list_connectors(self) -> List[Dict]:
        """List all registered connectors"""
        return [
            {
                'name': entry['name'],
                'priority': entry['priority'],
                'class': entry['class'].__name__
            }
            for entry in self._connectors
        ]


def get_connector_registry() -> ConnectorRegistry:
    """Get or create the global connector registry"""
    global _registry
    if _registry is None:
        _registry = ConnectorRegistry()
        # Auto-register built-in connectors
        _register_builtin_connectors(_registry)
    return _registry


def _register_builtin_connectors(registry: ConnectorRegistry):
    """Register all built-in connectors"""
    from .workday import WorkdayConnector
    from .peoplesoft import PeopleSoftConnector

    registry.register('workday', WorkdayConnector, priority=60)
    registry.register('peoplesoft', PeopleSoftConnector, priority=50)


def create_connector(config, settings=None, **kwargs) -> SourceConnector:
    """Create the connector for an employer config."""
    return get_connector_registry().create(config, settings=settings, **kwargs)
