"""
Live configuration context.

Loads external configuration into named components and rebinds them in place
when the environment changes.
"""

from .binder import ConfigurationBinder
from .container import (
    PROTOTYPE,
    SINGLETON,
    ComponentContainer,
    ComponentDefinition,
    ComponentPostProcessor,
    RefreshScope,
    post_construct,
)
from .environment import Environment
from .errors import BindingError, ComponentNotFoundError, ConfigurationError, RebindError
from .properties import PropertiesSpec, canonical_key, configuration_properties, find_properties_spec
from .rebinder import ConfigurationPropertiesRebinder, RebindReport
from .scope import ScopeClassifier

__all__ = [
    "PROTOTYPE",
    "SINGLETON",
    "BindingError",
    "ComponentContainer",
    "ComponentDefinition",
    "ComponentNotFoundError",
    "ComponentPostProcessor",
    "ConfigurationBinder",
    "ConfigurationError",
    "ConfigurationPropertiesRebinder",
    "Environment",
    "PropertiesSpec",
    "RebindError",
    "RebindReport",
    "RefreshScope",
    "ScopeClassifier",
    "canonical_key",
    "configuration_properties",
    "find_properties_spec",
    "post_construct",
]
