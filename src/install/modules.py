"""Binary module records and the loaders that produce them."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from versioning.models import PackageIdentity


@dataclass(frozen=True)
class LoadedModule:
    """A binary module materialized in memory."""
    name: str
    package: PackageIdentity
    path: str
    content: bytes = field(repr=False)
    sha256: str = ""

    @property
    def size(self) -> int:
        return len(self.content)


class ModuleLoader(ABC):
    """Turns extracted module bytes into something the host can use."""

    @abstractmethod
    def load(self, package: PackageIdentity, name: str, path: str, content: bytes) -> LoadedModule:
        """Load one module extracted from ``package``."""


class InMemoryModuleLoader(ModuleLoader):
    """Keeps module bytes as immutable records; never writes to disk."""

    def load(self, package: PackageIdentity, name: str, path: str, content: bytes) -> LoadedModule:
        return LoadedModule(
            name=name,
            package=package,
            path=path,
            content=bytes(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )
