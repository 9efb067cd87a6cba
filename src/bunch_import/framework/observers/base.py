"""Base observer (row handler) interface.

An observer is bound to exactly one subject for its whole lifetime and
declares which capabilities it implements.  The subject's row pipeline
filters on those declarations instead of inspecting classes:

- ``ROW_IMPORT``: transforms the row inside ``Subject.import_row``
- ``PRE_VALIDATION``: checks the row before it is imported
- ``POST_PERSIST``: reacts after the row was written
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bunch_import.framework.subjects.base import Subject

Row = dict[str, Any]


class Capability(str, Enum):
    """Roles an observer can play in a subject's pipeline."""

    ROW_IMPORT = "row_import"
    PRE_VALIDATION = "pre_validation"
    POST_PERSIST = "post_persist"


class Observer(ABC):
    """Base class for all row handlers."""

    # Set by register_observer
    kind: str = ""
    description: str = ""
    capabilities: frozenset[Capability] = frozenset({Capability.ROW_IMPORT})

    def __init__(self, subject: Subject) -> None:
        self._subject = subject

    @property
    def subject(self) -> Subject:
        """The subject this observer is bound to."""
        return self._subject

    @property
    def system_logger(self) -> Any:
        return self._subject.system_logger

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @abstractmethod
    def handle(self, row: Row) -> Row | None:
        """Process one row.

        Returns:
            The (possibly new) row, or ``None`` to skip the row
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind!r})"
