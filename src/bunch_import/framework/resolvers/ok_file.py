"""
Ok-file aware file resolver.

Manifesto:
    Upstream systems drop bunches into a shared directory while they are
    still being written.  An ok marker declares which files are complete:
    a plain text file listing accepted basenames, one per line.  When a
    subject requires markers, only listed files are imported, and a file
    leaves its markers once it was imported, so the next run won't take
    it again.

Naming::

    <source_dir>/<prefix>_<name>.<suffix>        e.g. product-import_20170720-125052_01.csv
                                                         prefix         name            suffix

    Ok markers checked for that file:
        <prefix>.ok                              product-import.ok
        <prefix>_<name without counter>.ok       product-import_20170720-125052.ok

Tags:
    bunch-import, resolver, ok-file, file-system

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from bunch_import.core.errors import SourceFileError
from bunch_import.framework.config import SubjectConfiguration
from bunch_import.framework.logging import get_logger

logger = get_logger(__name__)

OK_SUFFIX = ".ok"


class OkFileAwareFileResolver:
    """Resolve ``<prefix>_<name>.<suffix>`` files, optionally gated by ok markers.

    Example:
        >>> resolver = OkFileAwareFileResolver(subject_config)
        >>> for path in resolver.load_files():
        ...     if resolver.should_be_handled(path):
        ...         import_file(path)
        ...         resolver.clean_up_ok_file(path)
    """

    def __init__(self, configuration: SubjectConfiguration, source_dir: str | Path | None = None) -> None:
        self.configuration = configuration
        self.source_dir = Path(source_dir or configuration.source_dir or ".")
        self.pattern = re.compile(
            rf"^(?P<prefix>{re.escape(configuration.prefix)})_"
            rf"(?P<filename>.+?)(?:_(?P<counter>\d+))?"
            rf"\.(?P<suffix>{re.escape(configuration.suffix)})$"
        )
        self._matches: list[dict[str, Any]] = []

    # ------------------------------------------------------------------ #
    # FileResolver protocol
    # ------------------------------------------------------------------ #

    def load_files(self) -> list[Path]:
        """
        Collect matching files sorted by name.

        Raises:
            SourceFileError: If the source directory does not exist
        """
        if not self.source_dir.is_dir():
            raise SourceFileError(f"Source directory {self.source_dir} does not exist").with_context(
                subject=self.configuration.id, path=str(self.source_dir)
            )

        self._matches = []
        files: list[Path] = []
        for path in sorted(self.source_dir.iterdir()):
            if not path.is_file():
                continue
            match = self.match(path)
            if match is None:
                continue
            self._matches.append(match)
            files.append(path)

        logger.debug("resolver.files_loaded", subject=self.configuration.id, count=len(files))
        return files

    def should_be_handled(self, path: str | Path) -> bool:
        path = Path(path)
        if self.match(path) is None:
            return False
        if not self.configuration.ok_file_needed:
            return True
        return any(path.name in self._read_ok_file(ok_file) for ok_file in self.ok_files_for(path))

    def clean_up_ok_file(self, path: str | Path) -> None:
        path = Path(path)
        for ok_file in self.ok_files_for(path):
            entries = self._read_ok_file(ok_file)
            if path.name not in entries:
                continue
            remaining = [entry for entry in entries if entry != path.name]
            if remaining:
                ok_file.write_text("\n".join(remaining) + "\n", encoding="utf-8")
                logger.debug("resolver.ok_file_updated", ok_file=str(ok_file), removed=path.name)
            else:
                ok_file.unlink(missing_ok=True)
                logger.debug("resolver.ok_file_removed", ok_file=str(ok_file))

    def get_matches(self) -> list[dict[str, Any]]:
        return list(self._matches)

    def reset(self) -> None:
        self._matches = []

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def match(self, path: str | Path) -> dict[str, Any] | None:
        """Parse a file name into ``prefix``, ``filename``, ``counter`` and ``suffix``."""
        found = self.pattern.match(Path(path).name)
        if found is None:
            return None
        return {**found.groupdict(), "path": str(path)}

    def ok_files_for(self, path: str | Path) -> list[Path]:
        """Candidate ok markers for ``path``, most specific last."""
        path = Path(path)
        candidates = [path.parent / f"{self.configuration.prefix}{OK_SUFFIX}"]
        match = self.match(path)
        if match is not None:
            candidates.append(path.parent / f"{match['prefix']}_{match['filename']}{OK_SUFFIX}")
        return candidates

    @staticmethod
    def _read_ok_file(ok_file: Path) -> list[str]:
        if not ok_file.is_file():
            return []
        return [line.strip() for line in ok_file.read_text(encoding="utf-8").splitlines() if line.strip()]

    def __repr__(self) -> str:
        return f"OkFileAwareFileResolver(subject={self.configuration.id!r}, source_dir={str(self.source_dir)!r})"


class DefaultFileResolverFactory:
    """Create an :class:`OkFileAwareFileResolver` per subject configuration."""

    def __init__(self, source_dir: str | Path | None = None) -> None:
        self.source_dir = source_dir

    def create_file_resolver(self, subject: SubjectConfiguration) -> OkFileAwareFileResolver:
        return OkFileAwareFileResolver(subject, self.source_dir)


__all__ = ["OkFileAwareFileResolver", "DefaultFileResolverFactory", "OK_SUFFIX"]
