"""Plugins: top-level units an application runs in sequence."""

from bunch_import.framework.plugins.subject_plugin import (
    FatalPolicy,
    PluginState,
    SubjectPlugin,
    always_fatal,
    is_fatal,
    never_fatal,
)

__all__ = ["SubjectPlugin", "PluginState", "FatalPolicy", "is_fatal", "never_fatal", "always_fatal"]
