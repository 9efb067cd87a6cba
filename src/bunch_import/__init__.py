"""
bunch-import: bulk import of row-based files through pluggable row handlers.

Packages:
- bunch_import.core: errors, protocols, settings, run-status registry, file locks
- bunch_import.framework: configuration, observers, subjects, resolvers, plugins
- bunch_import.cli: the ``bunch-import`` command line
"""

__version__ = "0.1.0"
