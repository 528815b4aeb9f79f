"""Parsing for NuGet versions and version ranges."""

import re
from typing import Optional, Tuple

import semantic_version

from common.errors import ConstraintSyntaxError
from .models import VersionRange, format_version, version_key

_VERSION_RE = re.compile(
    r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z][0-9A-Za-z.-]*))?(?:\+([0-9A-Za-z.-]+))?$"
)
_FLOAT_RE = re.compile(r"^(?:(\d+)\.)?(?:(\d+)\.)?(?:(\d+)\.)?\*$")
_COMPARATOR_RE = re.compile(r"^(>=|<=|==|=|>|<)\s*(\S+)$")


def parse_version(text: str) -> semantic_version.Version:
    """Parse a NuGet version string.

    A fourth (revision) component is kept as build data unless it is zero;
    ``+metadata`` is discarded since it never affects identity.

    Raises:
        ConstraintSyntaxError: When ``text`` is not a version.
    """
    raw = (text or "").strip()
    match = _VERSION_RE.match(raw)
    if not match:
        raise ConstraintSyntaxError(raw, "not a valid version")
    major, minor, patch, revision, prerelease, _metadata = match.groups()
    build: Tuple[str, ...] = ()
    if revision is not None and int(revision) != 0:
        build = (str(int(revision)),)
    try:
        return semantic_version.Version(
            major=int(major),
            minor=int(minor or 0),
            patch=int(patch or 0),
            prerelease=tuple(prerelease.split(".")) if prerelease else (),
            build=build,
        )
    except ValueError as exc:
        raise ConstraintSyntaxError(raw, str(exc)) from exc


def try_parse_version(text: str) -> Optional[semantic_version.Version]:
    """Parse a version, returning None for garbage listed by a feed."""
    try:
        return parse_version(text)
    except ConstraintSyntaxError:
        return None


def normalize_version(text: str) -> str:
    """Return the normalized string form of a version string."""
    return format_version(parse_version(text))


def _parse_interval(raw: str) -> VersionRange:
    min_inclusive = raw[0] == "["
    max_inclusive = raw[-1] == "]"
    inner = raw[1:-1].strip()
    if "," not in inner:
        if not (min_inclusive and max_inclusive) or not inner:
            raise ConstraintSyntaxError(raw, "a single version must use [x] notation")
        exact = parse_version(inner)
        return VersionRange(exact, True, exact, True, original=raw)

    parts = inner.split(",")
    if len(parts) != 2:
        raise ConstraintSyntaxError(raw, "an interval takes exactly two bounds")
    low_text, high_text = parts[0].strip(), parts[1].strip()
    if not low_text and not high_text:
        raise ConstraintSyntaxError(raw, "an interval needs at least one bound")
    low = parse_version(low_text) if low_text else None
    high = parse_version(high_text) if high_text else None
    if low is not None and high is not None:
        if version_key(low) > version_key(high):
            raise ConstraintSyntaxError(raw, "minimum is greater than maximum")
        if version_key(low) == version_key(high) and not (min_inclusive and max_inclusive):
            raise ConstraintSyntaxError(raw, "empty interval")
    return VersionRange(
        low,
        min_inclusive if low is not None else True,
        high,
        max_inclusive if high is not None else False,
        original=raw,
    )


def _parse_float(raw: str) -> VersionRange:
    match = _FLOAT_RE.match(raw)
    if not match:
        raise ConstraintSyntaxError(raw, "unsupported floating version")
    prefix = tuple(int(part) for part in match.groups() if part is not None)
    padded = prefix + (0,) * (3 - len(prefix))
    floor = semantic_version.Version(major=padded[0], minor=padded[1], patch=padded[2])
    return VersionRange(floor, True, None, False, float_prefix=prefix, original=raw)


def _parse_comparators(raw: str) -> VersionRange:
    low = high = None
    low_inclusive, high_inclusive = True, False
    clauses = [c for c in re.split(r"[,\s]+(?=[<>=])", raw) if c.strip()]
    if len(clauses) > 2:
        raise ConstraintSyntaxError(raw, "too many comparators")
    for clause in clauses:
        match = _COMPARATOR_RE.match(clause.strip())
        if not match:
            raise ConstraintSyntaxError(raw, f"cannot parse '{clause.strip()}'")
        op, text = match.groups()
        version = parse_version(text)
        if op in ("=", "=="):
            return VersionRange(version, True, version, True, original=raw)
        if op in (">", ">="):
            if low is not None:
                raise ConstraintSyntaxError(raw, "duplicate lower bound")
            low, low_inclusive = version, op == ">="
        else:
            if high is not None:
                raise ConstraintSyntaxError(raw, "duplicate upper bound")
            high, high_inclusive = version, op == "<="
    if low is not None and high is not None and version_key(low) > version_key(high):
        raise ConstraintSyntaxError(raw, "minimum is greater than maximum")
    return VersionRange(low, low_inclusive, high, high_inclusive, original=raw)


def parse_range(text: str) -> VersionRange:
    """Parse a version range.

    Accepts NuGet interval notation (``[1.0,2.0)``, ``(,1.0]``, ``[1.0]``),
    a bare minimum version (``1.0``), floating versions (``1.*``, ``*``) and
    simple comparator pairs (``>=1.0 <2.0``).

    Raises:
        ConstraintSyntaxError: When the text cannot be parsed.
    """
    raw = (text or "").strip()
    if not raw:
        raise ConstraintSyntaxError(raw, "empty range")
    if raw[0] in "[(":
        if raw[-1] not in "])":
            raise ConstraintSyntaxError(raw, "unterminated interval")
        return _parse_interval(raw)
    if "*" in raw:
        return _parse_float(raw)
    if raw[0] in "<>=":
        return _parse_comparators(raw)
    return VersionRange(parse_version(raw), True, None, False, original=raw)
