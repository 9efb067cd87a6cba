"""Source file discovery for subjects."""

from bunch_import.framework.resolvers.base import FileResolver, FileResolverFactory
from bunch_import.framework.resolvers.ok_file import OK_SUFFIX, DefaultFileResolverFactory, OkFileAwareFileResolver

__all__ = [
    "FileResolver",
    "FileResolverFactory",
    "OkFileAwareFileResolver",
    "DefaultFileResolverFactory",
    "OK_SUFFIX",
]
