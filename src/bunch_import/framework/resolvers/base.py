"""File resolver protocols.

A resolver is created per subject and answers three questions for the
orchestrator: which files exist, whether a given file may be imported
now, and how to mark a file as done.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from bunch_import.framework.config import SubjectConfiguration


@runtime_checkable
class FileResolver(Protocol):
    """Candidate file discovery for one subject."""

    def load_files(self) -> list[Path]:
        """Scan the source directory and return candidate files in import order."""
        ...

    def should_be_handled(self, path: str | Path) -> bool:
        """Whether ``path`` may be imported in this run."""
        ...

    def clean_up_ok_file(self, path: str | Path) -> None:
        """Remove ``path`` from its ok markers after a successful import."""
        ...

    def get_matches(self) -> list[dict[str, Any]]:
        """Name matches collected by :meth:`load_files`."""
        ...

    def reset(self) -> None:
        """Forget all state so the resolver can be reused."""
        ...


@runtime_checkable
class FileResolverFactory(Protocol):
    def create_file_resolver(self, subject: SubjectConfiguration) -> FileResolver: ...


__all__ = ["FileResolver", "FileResolverFactory"]
