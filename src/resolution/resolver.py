"""Pick one version per package so every reachable edge is satisfied."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from common.errors import ResolutionConflict, ResolverInvariantError
from versioning.models import (
    DependencyNode,
    PackageDependency,
    PackageIdentity,
    PackageRequest,
    version_key,
)

logger = logging.getLogger(__name__)

Constraint = Tuple[DependencyNode, PackageDependency]


class ConstraintResolver:
    """Backtracking resolver using the "lowest applicable version" policy.

    Roots are pinned to the versions the selector chose; every other package
    takes the lowest candidate that satisfies all edges pointing at it.
    """

    def __init__(self):
        self._warned = set()

    @staticmethod
    def _candidates(nodes: Iterable[DependencyNode]) -> Dict[str, List[DependencyNode]]:
        by_name: Dict[str, List[DependencyNode]] = {}
        for node in nodes:
            by_name.setdefault(node.identity.key, []).append(node)
        for options in by_name.values():
            options.sort(key=lambda n: version_key(n.version))
        return by_name

    @staticmethod
    def _constraints(assignment: Mapping[str, DependencyNode], key: str) -> List[Constraint]:
        return [
            (node, dep)
            for node in assignment.values()
            for dep in node.dependencies
            if dep.key == key
        ]

    @staticmethod
    def _accepts(
        option: DependencyNode,
        constraints: Sequence[Constraint],
        assignment: Mapping[str, DependencyNode],
    ) -> bool:
        if not all(dep.version_range.satisfies(option.version) for _, dep in constraints):
            return False
        for dep in option.dependencies:
            chosen = assignment.get(dep.key)
            if chosen is not None and not dep.version_range.satisfies(chosen.version):
                return False
        return True

    def _next_open(
        self,
        roots: Sequence[DependencyNode],
        assignment: Mapping[str, DependencyNode],
        by_name: Mapping[str, List[DependencyNode]],
    ) -> Optional[str]:
        """First unassigned dependency reached breadth-first from the roots."""
        queue = list(roots)
        seen = {root.identity.key for root in roots}
        while queue:
            node = queue.pop(0)
            for dep in node.dependencies:
                if dep.key in seen:
                    continue
                seen.add(dep.key)
                if dep.key not in by_name:
                    if dep.key not in self._warned:
                        self._warned.add(dep.key)
                        logger.warning(
                            "No candidate versions of %s (required by %s %s); skipping",
                            dep.name,
                            node.identity,
                            dep.version_range,
                        )
                    continue
                chosen = assignment.get(dep.key)
                if chosen is None:
                    return dep.key
                queue.append(chosen)
        return None

    @staticmethod
    def _conflict(key: str, constraints: Sequence[Constraint], by_name) -> ResolutionConflict:
        name = by_name[key][0].name if by_name.get(key) else key
        return ResolutionConflict(
            name, [(str(node.identity), str(dep.version_range)) for node, dep in constraints]
        )

    def resolve(
        self,
        requests: Sequence[PackageRequest],
        candidate_nodes: Iterable[DependencyNode],
        pinned: Mapping[str, PackageIdentity],
    ) -> List[PackageIdentity]:
        """Return the install set in dependency order.

        ``pinned`` maps each requested package name to the identity chosen for
        it. Raises ``ResolutionConflict`` when no assignment satisfies every
        reachable edge.
        """
        self._warned = set()
        nodes = list(candidate_nodes)
        by_name = self._candidates(nodes)
        pins = {name.lower(): identity for name, identity in pinned.items()}

        roots: List[DependencyNode] = []
        assignment: Dict[str, DependencyNode] = {}
        for request in requests:
            identity = pins.get(request.name.lower())
            if identity is None:
                raise ResolverInvariantError(f"No pinned version for root {request.name}")
            node = next((n for n in by_name.get(identity.key, []) if n.identity == identity), None)
            if node is None:
                raise ResolverInvariantError(f"No graph node for root {identity}")
            existing = assignment.get(identity.key)
            if existing is not None and existing.identity != identity:
                raise ResolutionConflict(
                    identity.name,
                    [("request", str(existing.version)), ("request", str(identity.version))],
                )
            if existing is None:
                roots.append(node)
                assignment[identity.key] = node
        for root in roots:
            others = {k: v for k, v in assignment.items() if k != root.identity.key}
            constraints = self._constraints(others, root.identity.key)
            if not self._accepts(root, constraints, others):
                bad = next(
                    (dep.key for dep in root.dependencies
                     if dep.key in others and not dep.version_range.satisfies(others[dep.key].version)),
                    root.identity.key,
                )
                raise self._conflict(bad, self._constraints(assignment, bad), by_name)

        # Each frame: (package key, viable options, index of the current choice)
        stack: List[Tuple[str, List[DependencyNode], int]] = []
        first_conflict: Optional[ResolutionConflict] = None
        while True:
            key = self._next_open(roots, assignment, by_name)
            if key is None:
                break
            constraints = self._constraints(assignment, key)
            options = [n for n in by_name[key] if self._accepts(n, constraints, assignment)]
            if options:
                stack.append((key, options, 0))
                assignment[key] = options[0]
                continue

            if first_conflict is None:
                first_conflict = self._conflict(key, constraints, by_name)
            logger.debug("Dead end at %s; backtracking", key)
            while stack:
                prev_key, prev_options, index = stack.pop()
                del assignment[prev_key]
                if index + 1 < len(prev_options):
                    stack.append((prev_key, prev_options, index + 1))
                    assignment[prev_key] = prev_options[index + 1]
                    break
            else:
                raise first_conflict

        return self._dependency_order(assignment)

    @staticmethod
    def _dependency_order(assignment: Mapping[str, DependencyNode]) -> List[PackageIdentity]:
        """Dependencies before dependents; ties (and cycles) broken by name."""
        remaining = dict(assignment)
        ordered: List[PackageIdentity] = []
        while remaining:
            ready = sorted(
                key for key, node in remaining.items()
                if not any(dep.key in remaining and dep.key != key for dep in node.dependencies)
            )
            if not ready:
                # A cycle: release the alphabetically first member.
                ready = [min(remaining)]
            for key in ready:
                ordered.append(remaining.pop(key).identity)
        return ordered

    @staticmethod
    def correlate(
        identities: Iterable[PackageIdentity], nodes: Iterable[DependencyNode]
    ) -> List[DependencyNode]:
        """Map resolved identities back onto their graph nodes."""
        index = {node.identity: node for node in nodes}
        result = []
        for identity in identities:
            node = index.get(identity)
            if node is None:
                raise ResolverInvariantError(f"Resolved {identity} has no matching graph node")
            result.append(node)
        return result
