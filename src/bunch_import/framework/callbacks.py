"""Handler registry: callback trees flattened into typed handler lists.

Manifesto:
    Configuration may group handlers under arbitrarily deep names, but
    dispatch only ever looks at the *top-level* key.  The registry walks
    a callback tree once at subject set-up, instantiates every handler
    bound to its subject and files it under that top-level type.  After
    set-up the registry is read-only.

Flattening::

    {"validate": {"a": "HandlerA", "nested": {"b": "HandlerB"}},
     "import":   ["strip"]}

        ──▶ validate: [HandlerA(subject), HandlerB(subject)]
            import:   [Strip(subject)]

Tags:
    bunch-import, framework, callbacks, registry, dispatch

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from bunch_import.framework.config import HandlerGroup
from bunch_import.framework.logging import get_logger
from bunch_import.framework.observers.base import Observer
from bunch_import.framework.observers.registry import create_observer

if TYPE_CHECKING:
    from bunch_import.framework.subjects.base import Subject

logger = get_logger(__name__)

ObserverFactory = Callable[[str, "Subject"], Observer]


class HandlerRegistry:
    """Ordered ``type -> [handler]`` mapping owned by one subject.

    Example:
        >>> registry = HandlerRegistry(subject)
        >>> registry.register_tree(parse_callback_tree({"import": {"x": "strip"}}))
        >>> registry.by_type("import")
        (StripObserver(kind='strip'),)
    """

    def __init__(self, subject: Subject, factory: ObserverFactory = create_observer) -> None:
        self._subject = subject
        self._factory = factory
        self._handlers: dict[str, list[Observer]] = {}

    def register(self, handler_type: str, identifier: str) -> Observer:
        """Instantiate ``identifier`` bound to the subject and append it under ``handler_type``.

        Raises:
            UnknownHandlerError: If ``identifier`` is not a registered kind
        """
        observer = self._factory(identifier, self._subject)
        self._handlers.setdefault(handler_type, []).append(observer)
        logger.debug("callback.registered", handler_type=handler_type, kind=identifier)
        return observer

    def register_tree(self, tree: HandlerGroup, inherited_type: str | None = None) -> None:
        """Depth-first registration of every leaf in ``tree``.

        On the top-level call each key becomes the dispatch type for its
        whole subtree; nested keys never change it.
        """
        for key, node in tree.items():
            handler_type = key if inherited_type is None else inherited_type
            if isinstance(node, HandlerGroup):
                self.register_tree(node, handler_type)
            else:
                self.register(handler_type, node.identifier)

    def by_type(self, handler_type: str) -> tuple[Observer, ...]:
        """Handlers registered for ``handler_type`` in registration order; empty if unknown."""
        return tuple(self._handlers.get(handler_type, ()))

    def all_types(self) -> tuple[str, ...]:
        """Types in the order they were first introduced."""
        return tuple(self._handlers)

    def __len__(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())

    def __contains__(self, handler_type: object) -> bool:
        return handler_type in self._handlers

    def __repr__(self) -> str:
        counts = ", ".join(f"{t}={len(h)}" for t, h in self._handlers.items())
        return f"HandlerRegistry({counts})"


__all__ = ["HandlerRegistry", "ObserverFactory"]
