"""Nuspec parsing: identity and dependency groups from package manifests."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple
from xml.etree import ElementTree as ET

from common.errors import ConstraintSyntaxError
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import (
    ALL_VERSIONS,
    DependencyGroup,
    PackageDependency,
    PackageIdentity,
    PackageMetadata,
)
from versioning.parser import parse_range, parse_version

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Nuspec:
    """The parts of a nuspec the loader consumes."""
    package_id: str
    version: str
    groups: Tuple[DependencyGroup, ...] = ()

    def to_metadata(self, identity: Optional[PackageIdentity] = None) -> PackageMetadata:
        if identity is None:
            identity = PackageIdentity(self.package_id, parse_version(self.version))
        return PackageMetadata(identity=identity, groups=self.groups)


def _local(tag: str) -> str:
    """Strip the XML namespace; nuspec schema versions use different ones."""
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _parse_dependency(element: ET.Element) -> PackageDependency:
    dep_id = (element.get("id") or "").strip()
    if not dep_id:
        raise ValueError("nuspec dependency without an id")
    raw_range = (element.get("version") or "").strip()
    return PackageDependency(dep_id, parse_range(raw_range) if raw_range else ALL_VERSIONS)


def _parse_groups(dependencies: ET.Element) -> Tuple[DependencyGroup, ...]:
    groups: List[DependencyGroup] = []
    ungrouped: List[PackageDependency] = []
    for child in dependencies:
        tag = _local(child.tag)
        if tag == "group":
            deps = tuple(
                _parse_dependency(item) for item in child if _local(item.tag) == "dependency"
            )
            groups.append(DependencyGroup(child.get("targetFramework") or None, deps))
        elif tag == "dependency":
            ungrouped.append(_parse_dependency(child))
    if ungrouped:
        groups.append(DependencyGroup(None, tuple(ungrouped)))
    return tuple(groups)


def parse_nuspec(data: bytes) -> Nuspec:
    """Parse nuspec XML.

    Raises:
        ValueError: When the document is not a nuspec.
        ConstraintSyntaxError: When a dependency declares an invalid range.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ValueError(f"Malformed nuspec: {exc}") from exc
    metadata = _child(root, "metadata")
    if _local(root.tag) != "package" or metadata is None:
        raise ValueError("Document is not a nuspec")

    id_el = _child(metadata, "id")
    version_el = _child(metadata, "version")
    if id_el is None or not (id_el.text or "").strip():
        raise ValueError("nuspec has no id")
    if version_el is None or not (version_el.text or "").strip():
        raise ValueError("nuspec has no version")

    dependencies = _child(metadata, "dependencies")
    try:
        groups = _parse_groups(dependencies) if dependencies is not None else ()
    except ConstraintSyntaxError:
        logger.error("Invalid dependency range in nuspec for %s", id_el.text.strip())
        raise

    nuspec = Nuspec(id_el.text.strip(), version_el.text.strip(), groups)
    if is_debug_enabled(logger):
        logger.debug(
            "Parsed nuspec",
            extra=extra_context(
                event="parse",
                component="nuspec",
                target=nuspec.package_id,
                count=sum(len(g.dependencies) for g in groups),
            ),
        )
    return nuspec
