"""Capability interface every package feed implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

import semantic_version

from versioning.models import PackageIdentity, PackageMetadata


class PackageFeed(ABC):
    """A remote (or in-memory) source of package versions, metadata and archives.

    Absence is never an error: ``find_versions`` returns an empty list and
    ``get_dependencies`` returns None when the feed does not know the package,
    so callers can move on to the next feed. Transport problems raise
    ``TransportFailure``.
    """

    name: str = "feed"

    @abstractmethod
    async def find_versions(self, package_id: str) -> List[semantic_version.Version]:
        """Return every version the feed lists, in feed order."""

    @abstractmethod
    async def get_dependencies(self, identity: PackageIdentity) -> Optional[PackageMetadata]:
        """Return dependency metadata for the exact identity, or None."""

    @abstractmethod
    async def download(self, identity: PackageIdentity) -> bytes:
        """Return the archive bytes for ``identity``."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.name!r})"
