"""
Import configuration: subjects, plugins and typed callback trees.

Manifesto:
    The YAML configuration says *what* to import: which plugins run,
    which subjects each plugin iterates, where their files live and which
    handlers each subject applies.  It is parsed into pydantic models once;
    callback trees become an explicit recursive type and every handler
    kind is checked against the observer registry before a single file is
    touched.

Callback trees::

    callbacks:
      - validate:                    # dispatch type "validate"
          a: required-columns        # HandlerLeaf
          nested:                    # HandlerGroup, still type "validate"
            b: strip
        import:
          - strip                    # lists are ordered groups too
          - empty-to-none

Tags:
    bunch-import, configuration, yaml, pydantic, callbacks

Doc-Types:
    api-reference, configuration-guide
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeAlias

import yaml
from pydantic import BaseModel, ConfigDict, Field, InstanceOf, ValidationError, field_validator, model_validator

from bunch_import.core.errors import CallbackConfigError, ConfigurationLoadError, UnknownHandlerError

# =============================================================================
# Callback tree
# =============================================================================


@dataclass(frozen=True)
class HandlerLeaf:
    """A handler kind tag at the bottom of a callback tree."""

    identifier: str


@dataclass(frozen=True)
class HandlerGroup:
    """Ordered mapping of name to subtree."""

    children: dict[str, CallbackNode] = field(default_factory=dict)

    def items(self) -> Iterator[tuple[str, CallbackNode]]:
        return iter(self.children.items())

    def leaves(self) -> Iterator[HandlerLeaf]:
        """Depth-first leaves in declaration order."""
        for _, node in self.items():
            if isinstance(node, HandlerGroup):
                yield from node.leaves()
            else:
                yield node

    def to_dict(self) -> dict[str, Any]:
        return {
            name: node.to_dict() if isinstance(node, HandlerGroup) else node.identifier
            for name, node in self.items()
        }

    def __len__(self) -> int:
        return len(self.children)


CallbackNode: TypeAlias = HandlerLeaf | HandlerGroup


def parse_callback_tree(raw: Any, _key_path: tuple[str, ...] = ()) -> HandlerGroup:
    """
    Convert a plain nested mapping into a :class:`HandlerGroup`.

    Lists are accepted wherever a mapping is and are keyed by position.

    Raises:
        CallbackConfigError: For non-mapping roots, non-string keys and
            leaves that are neither a kind tag nor a subtree
    """
    if isinstance(raw, list | tuple):
        raw = {str(index): value for index, value in enumerate(raw)}
    if not isinstance(raw, Mapping):
        location = ".".join(_key_path) or "<root>"
        raise CallbackConfigError(
            f"Callback tree at {location} must be a mapping, got {type(raw).__name__}",
            key_path=_key_path,
        )

    children: dict[str, CallbackNode] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise CallbackConfigError(f"Callback keys must be non-empty strings, got {key!r}", key_path=_key_path)
        key_path = (*_key_path, key)
        if isinstance(value, str):
            identifier = value.strip()
            if not identifier:
                raise CallbackConfigError(f"Empty handler kind at {'.'.join(key_path)}", key_path=key_path)
            children[key] = HandlerLeaf(identifier)
        elif isinstance(value, Mapping | list | tuple):
            children[key] = parse_callback_tree(value, key_path)
        else:
            raise CallbackConfigError(
                f"Handler at {'.'.join(key_path)} must be a kind tag or a mapping, got {type(value).__name__}",
                key_path=key_path,
            )
    return HandlerGroup(children)


# =============================================================================
# Configuration models
# =============================================================================


class SubjectConfiguration(BaseModel):
    """One processing unit: which files it takes and which handlers it applies."""

    model_config = ConfigDict(extra="forbid")

    id: str
    prefix: str
    source_dir: Path | None = None
    suffix: str = "csv"
    delimiter: str = ","
    encoding: str = "utf-8"
    ok_file_needed: bool = False
    source_date_format: str | None = None
    callbacks: list[InstanceOf[HandlerGroup]] = Field(default_factory=list)
    params: dict[str, Any] = Field(default_factory=dict)

    @field_validator("callbacks", mode="before")
    @classmethod
    def _parse_callbacks(cls, value: Any) -> list[HandlerGroup]:
        if value is None:
            return []
        if isinstance(value, Mapping | HandlerGroup):
            value = [value]
        return [item if isinstance(item, HandlerGroup) else parse_callback_tree(item) for item in value]

    @field_validator("delimiter")
    @classmethod
    def _single_char(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("delimiter must be a single character")
        return value

    def handler_identifiers(self) -> list[str]:
        """All handler kinds used by this subject, in declaration order."""
        return [leaf.identifier for tree in self.callbacks for leaf in tree.leaves()]


class PluginConfiguration(BaseModel):
    """A plugin and the subjects it iterates."""

    model_config = ConfigDict(extra="forbid")

    id: str = "subject"
    subjects: list[SubjectConfiguration] = Field(default_factory=list)


class ImportConfiguration(BaseModel):
    """Top-level import configuration."""

    model_config = ConfigDict(extra="forbid")

    operation_name: str = "add-update"
    source_dir: Path = Path("var/importexport")
    source_date_format: str = "%Y-%m-%d"
    plugins: list[PluginConfiguration] = Field(default_factory=list)

    @model_validator(mode="after")
    def _inherit_subject_defaults(self) -> ImportConfiguration:
        for plugin in self.plugins:
            for subject in plugin.subjects:
                if subject.source_dir is None:
                    subject.source_dir = self.source_dir
                if subject.source_date_format is None:
                    subject.source_date_format = self.source_date_format
        return self

    def subjects(self) -> Iterator[SubjectConfiguration]:
        for plugin in self.plugins:
            yield from plugin.subjects


# =============================================================================
# Loading
# =============================================================================


def validate_handlers(configuration: ImportConfiguration) -> None:
    """Check every handler kind against the observer registry.

    Raises:
        UnknownHandlerError: On the first kind that is not registered
    """
    from bunch_import.framework.observers.registry import has_observer, list_observers

    for subject in configuration.subjects():
        for identifier in subject.handler_identifiers():
            if not has_observer(identifier):
                error = UnknownHandlerError(identifier, list_observers())
                raise error.with_context(subject=subject.id)


def load_configuration(path: str | Path, *, check_handlers: bool = True) -> ImportConfiguration:
    """
    Load and validate a YAML import configuration.

    Relative source directories resolve against the configuration file's
    directory.

    Raises:
        ConfigurationLoadError: File unreadable, invalid YAML or invalid schema
        CallbackConfigError: Malformed callback tree
        UnknownHandlerError: Handler kind not registered
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationLoadError(str(path), f"can't read configuration: {e}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationLoadError(str(path), f"invalid YAML: {e}", cause=e) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationLoadError(str(path), "top level must be a mapping")

    try:
        configuration = ImportConfiguration.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationLoadError(str(path), str(e), cause=e) from e

    base_dir = path.parent
    if not configuration.source_dir.is_absolute():
        configuration.source_dir = base_dir / configuration.source_dir
    for subject in configuration.subjects():
        if subject.source_dir is not None and not subject.source_dir.is_absolute():
            subject.source_dir = base_dir / subject.source_dir

    if check_handlers:
        validate_handlers(configuration)
    return configuration


__all__ = [
    "HandlerLeaf",
    "HandlerGroup",
    "CallbackNode",
    "parse_callback_tree",
    "SubjectConfiguration",
    "PluginConfiguration",
    "ImportConfiguration",
    "validate_handlers",
    "load_configuration",
]
