"""
Subject: the per-file execution context and its row pipeline.

Manifesto:
    A subject is one configured processing unit applied to one bunch.
    It owns the handler registry built from its callback trees and runs
    every row through the handlers in a fixed order.  The pipeline has no
    hidden state: the same registry and the same row always give the same
    result, so a subject can be rebuilt per file or reused per run.

Row pipeline::

    row ──▶ validate_row ──▶ import_row ──▶ processor.persist ──▶ after_persist
            PRE_VALIDATION   ROW_IMPORT                          POST_PERSIST

    Inside each step: for type in all_types(), for handler in by_type(type),
    only handlers declaring the step's capability run.  A handler
    returning None skips the row; exceptions propagate unchanged.

Lifecycle::

    Subject(...) ──▶ set_up() ──▶ uid = ... ──▶ import_row()* ──▶ tear_down()
                     (once)

Tags:
    bunch-import, framework, subject, pipeline, observers

Doc-Types:
    api-reference, architecture-overview
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

from bunch_import.core.errors import BunchImportError, SubjectStateError
from bunch_import.core.protocols import Connection, RegistryProcessor
from bunch_import.framework.callbacks import HandlerRegistry, ObserverFactory
from bunch_import.framework.config import SubjectConfiguration
from bunch_import.framework.logging import get_logger
from bunch_import.framework.observers.base import Capability, Row
from bunch_import.framework.observers.registry import create_observer

if TYPE_CHECKING:
    from bunch_import.framework.processors import RowProcessor

DEFAULT_SOURCE_DATE_FORMAT = "%Y-%m-%d"


class Subject:
    """
    Execution context for one subject configuration.

    Example:
        >>> subject = Subject(config, serial="abc", registry_processor=registry, processor=processor)
        >>> subject.set_up()
        >>> subject.uid = "products_20240101_01"
        >>> subject.import_row({"sku": " A-1 "})
        {'sku': 'A-1'}
    """

    def __init__(
        self,
        configuration: SubjectConfiguration,
        *,
        serial: str,
        registry_processor: RegistryProcessor,
        processor: RowProcessor,
        system_logger: Any = None,
        observer_factory: ObserverFactory = create_observer,
    ) -> None:
        self.configuration = configuration
        self.serial = serial
        self.registry_processor = registry_processor
        self.processor = processor
        self.system_logger = system_logger or get_logger(f"bunch_import.subject.{configuration.id}")
        self.counters: Counter[str] = Counter()
        self.uid: str | None = None
        self._callbacks = HandlerRegistry(self, observer_factory)
        self._set_up = False

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def callbacks(self) -> HandlerRegistry:
        return self._callbacks

    @property
    def connection(self) -> Connection:
        """Connection of the persistence processor."""
        return self.processor.get_connection()

    @property
    def source_date_format(self) -> str:
        return self.configuration.source_date_format or DEFAULT_SOURCE_DATE_FORMAT

    @property
    def is_set_up(self) -> bool:
        return self._set_up

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def set_up(self) -> None:
        """
        Build the handler registry from the configured callback trees.

        Raises:
            SubjectStateError: If called twice
            UnknownHandlerError: If a callback names an unregistered kind
        """
        if self._set_up:
            raise SubjectStateError(f"Subject {self.configuration.id!r} is already set up").with_context(
                subject=self.configuration.id, serial=self.serial
            )
        for tree in self.configuration.callbacks:
            self._callbacks.register_tree(tree)
        self._set_up = True
        self.system_logger.debug(
            "subject.set_up",
            subject=self.configuration.id,
            handler_types=list(self._callbacks.all_types()),
            handlers=len(self._callbacks),
        )

    def tear_down(self) -> None:
        """Forget the per-file uid; the registry stays intact for reuse."""
        self.uid = None

    # ------------------------------------------------------------------ #
    # Row pipeline
    # ------------------------------------------------------------------ #

    def import_row(self, row: Row) -> Row | None:
        """Run ``row`` through every ``ROW_IMPORT`` handler.

        Returns:
            The transformed row, or ``None`` if a handler skipped it
        """
        return self._dispatch(Capability.ROW_IMPORT, row)

    def validate_row(self, row: Row) -> Row | None:
        """Run ``row`` through every ``PRE_VALIDATION`` handler."""
        return self._dispatch(Capability.PRE_VALIDATION, row)

    def after_persist(self, row: Row) -> None:
        """Notify ``POST_PERSIST`` handlers that ``row`` was written."""
        self._require_set_up()
        for handler_type in self._callbacks.all_types():
            for handler in self._callbacks.by_type(handler_type):
                if handler.supports(Capability.POST_PERSIST):
                    handler.handle(row)

    def _dispatch(self, capability: Capability, row: Row) -> Row | None:
        self._require_set_up()
        current: Row | None = row
        for handler_type in self._callbacks.all_types():
            for handler in self._callbacks.by_type(handler_type):
                if not handler.supports(capability):
                    continue
                try:
                    current = handler.handle(current)
                except BunchImportError as e:
                    e.with_context(handler_type=handler_type)
                    raise
                if current is None:
                    return None
        return current

    def _require_set_up(self) -> None:
        if not self._set_up:
            raise SubjectStateError(
                f"Subject {self.configuration.id!r} must be set up before rows are dispatched"
            ).with_context(subject=self.configuration.id, serial=self.serial)

    def __repr__(self) -> str:
        return f"Subject(id={self.configuration.id!r}, serial={self.serial!r}, uid={self.uid!r})"
