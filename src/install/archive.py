"""Read ``.nupkg`` archives without touching the disk."""

from __future__ import annotations

import io
import posixpath
import urllib.parse
import zipfile
from typing import Dict, List, Optional

from registry.nuget.nuspec import Nuspec, parse_nuspec
from versioning.frameworks import ANY_FRAMEWORK, TargetFramework, parse_framework

LIB_FOLDER = "lib"
REF_FOLDER = "ref"


class PackageArchive:
    """A package archive held in memory.

    Raises ``ValueError`` on construction when ``data`` is not a zip file.
    """

    def __init__(self, data: bytes):
        try:
            self._zip = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise ValueError(f"Not a package archive: {exc}") from exc
        # Archive entries are percent-encoded; map decoded paths back to entries.
        self._entries: Dict[str, str] = {
            urllib.parse.unquote(info.filename): info.filename
            for info in self._zip.infolist()
            if not info.is_dir()
        }

    @property
    def files(self) -> List[str]:
        return sorted(self._entries)

    def read(self, path: str) -> bytes:
        return self._zip.read(self._entries[path])

    def nuspec(self) -> Optional[Nuspec]:
        """The manifest at the archive root, if any."""
        for path in self._entries:
            if "/" not in path and path.lower().endswith(".nuspec"):
                return parse_nuspec(self.read(path))
        return None

    def _folder_items(self, root: str) -> Dict[TargetFramework, List[str]]:
        groups: Dict[TargetFramework, List[str]] = {}
        for path in self.files:
            parts = path.split("/")
            if len(parts) < 2 or parts[0].lower() != root:
                continue
            # Files directly under lib/ apply to any framework.
            framework = parse_framework(parts[1]) if len(parts) > 2 else ANY_FRAMEWORK
            groups.setdefault(framework, []).append(path)
        return groups

    def _library_groups(self) -> Dict[TargetFramework, List[str]]:
        return self._folder_items(LIB_FOLDER) or self._folder_items(REF_FOLDER)

    def supported_frameworks(self) -> List[TargetFramework]:
        """Frameworks the package has libraries or dependency groups for.

        A package with neither (content-only or an empty meta package)
        supports any framework.
        """
        frameworks = list(self._library_groups())
        nuspec = self.nuspec()
        if nuspec is not None:
            for group in nuspec.groups:
                framework = parse_framework(group.target_framework)
                if framework not in frameworks:
                    frameworks.append(framework)
        return frameworks or [ANY_FRAMEWORK]

    def lib_items(self, framework: TargetFramework) -> List[str]:
        """Library files for ``framework`` (``ref/`` when there is no ``lib/``)."""
        return list(self._library_groups().get(framework, []))

    @staticmethod
    def module_name(path: str) -> str:
        return posixpath.splitext(posixpath.basename(path))[0]

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "PackageArchive":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
