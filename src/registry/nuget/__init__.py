"""NuGet registry package.

- client.py: NuGet V3 feed (service index, flat container, nupkg downloads)
- nuspec.py: nuspec manifest parsing
"""

from .client import NuGetV3Feed  # noqa: F401
from .nuspec import Nuspec, parse_nuspec  # noqa: F401

__all__ = ["NuGetV3Feed", "Nuspec", "parse_nuspec"]
