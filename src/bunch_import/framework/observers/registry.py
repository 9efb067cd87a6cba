"""Observer registry: the static factory for handler kinds.

Manifesto:
    Callback trees name handlers by short kind tags ("strip",
    "required-columns").  Tags resolve through this registry only, so an
    unknown tag is a configuration error found when the configuration is
    loaded, not an import error found halfway through a file.

Tags:
    bunch-import, framework, registry, observers, factory

Doc-Types:
    api-reference
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

from bunch_import.core.errors import UnknownHandlerError
from bunch_import.framework.logging import get_logger
from bunch_import.framework.observers.base import Observer

if TYPE_CHECKING:
    from bunch_import.framework.subjects.base import Subject

logger = get_logger(__name__)

_registry: dict[str, type[Observer]] = {}
_loaded: bool = False


def _add(kind: str, cls: type[Observer]) -> None:
    if kind in _registry:
        raise ValueError(f"Observer '{kind}' is already registered")
    for registered_kind, registered in _registry.items():
        if registered is cls:
            raise ValueError(f"Observer class {cls.__name__} is already registered as '{registered_kind}'")
    if not cls.capabilities:
        raise ValueError(f"Observer '{kind}' declares no capabilities")
    cls.kind = kind
    _registry[kind] = cls
    logger.debug(
        "observer_registered",
        kind=kind,
        cls=cls.__name__,
        capabilities=sorted(c.value for c in cls.capabilities),
    )


def register_observer(kind: str) -> Callable[[type[Observer]], type[Observer]]:
    """Decorator to register an observer class under a kind tag."""

    def decorator(cls: type[Observer]) -> type[Observer]:
        _ensure_loaded()
        _add(kind, cls)
        return cls

    return decorator


def _ensure_loaded() -> None:
    """Register the built-in observers once (lazy initialization)."""
    global _loaded
    if not _loaded:
        _loaded = True
        _load_builtins()


def _load_builtins() -> None:
    from bunch_import.framework.observers.builtin import BUILTIN_OBSERVERS

    for kind, cls in BUILTIN_OBSERVERS.items():
        _add(kind, cls)
    logger.debug("observer_registry_loaded", registered=len(_registry))


def ensure_builtins() -> None:
    """Register the built-in observers if they are not registered yet."""
    _ensure_loaded()


def get_observer_class(kind: str) -> type[Observer]:
    """Get an observer class by kind.

    Raises:
        UnknownHandlerError: If the kind is not registered
    """
    _ensure_loaded()
    if kind not in _registry:
        raise UnknownHandlerError(kind, sorted(_registry))
    return _registry[kind]


def has_observer(kind: str) -> bool:
    _ensure_loaded()
    return kind in _registry


def create_observer(kind: str, subject: "Subject") -> Observer:
    """Instantiate the observer registered as ``kind`` bound to ``subject``."""
    return get_observer_class(kind)(subject)


def list_observers() -> list[str]:
    """List all registered observer kinds."""
    _ensure_loaded()
    return sorted(_registry)


def clear_registry() -> None:
    """Clear registry (for testing); built-ins reload on next access."""
    global _loaded
    _registry.clear()
    _loaded = False
