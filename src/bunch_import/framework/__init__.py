"""
Bunch Import Framework - configuration, handlers and the import run.

This module provides:
- YAML import configuration and typed callback trees
- The observer registry and built-in row handlers
- The per-subject handler registry

Subjects, resolvers, plugins and the application import the core lock
module, which itself logs through this package, so they are imported
from their own modules:

    from bunch_import.framework.application import Application
    from bunch_import.framework.plugins import SubjectPlugin
"""

from bunch_import.framework.callbacks import HandlerRegistry
from bunch_import.framework.config import (
    HandlerGroup,
    HandlerLeaf,
    ImportConfiguration,
    PluginConfiguration,
    SubjectConfiguration,
    load_configuration,
    parse_callback_tree,
)
from bunch_import.framework.observers import (
    Capability,
    Observer,
    clear_registry,
    create_observer,
    list_observers,
    register_observer,
)

__all__ = [
    # Configuration
    "ImportConfiguration",
    "PluginConfiguration",
    "SubjectConfiguration",
    "HandlerGroup",
    "HandlerLeaf",
    "parse_callback_tree",
    "load_configuration",
    # Observers
    "Observer",
    "Capability",
    "register_observer",
    "create_observer",
    "list_observers",
    "clear_registry",
    # Handler registry
    "HandlerRegistry",
]
