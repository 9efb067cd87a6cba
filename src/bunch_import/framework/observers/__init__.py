"""Row handlers (observers) and their kind registry."""

from bunch_import.framework.observers.base import Capability, Observer, Row
from bunch_import.framework.observers.registry import (
    clear_registry,
    create_observer,
    ensure_builtins,
    get_observer_class,
    has_observer,
    list_observers,
    register_observer,
)

__all__ = [
    "Capability",
    "Observer",
    "Row",
    "register_observer",
    "get_observer_class",
    "has_observer",
    "create_observer",
    "ensure_builtins",
    "list_observers",
    "clear_registry",
]
