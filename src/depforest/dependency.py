"""
Identifiers and dependency references shared by all package managers.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List


@dataclass(frozen=True, order=True)
class Identifier:
    """A unique (type, namespace, name, version) coordinate of a package."""

    type: str
    namespace: str
    name: str
    version: str

    def to_coordinates(self) -> str:
        """Return the colon separated form, e.g. 'Go::golang.org/x/text:0.3.7'."""
        return f"{self.type}:{self.namespace}:{self.name}:{self.version}"

    @classmethod
    def from_coordinates(cls, coordinates: str) -> "Identifier":
        parts = coordinates.split(":", 3)
        if len(parts) != 4:
            raise ValueError(f"Invalid identifier coordinates: {coordinates}")
        return cls(*parts)

    def __str__(self) -> str:
        return self.to_coordinates()


class PackageLinkage(Enum):
    """How a dependency is linked into the project that uses it."""

    DYNAMIC = "DYNAMIC"
    STATIC = "STATIC"
    PROJECT_DYNAMIC = "PROJECT_DYNAMIC"
    PROJECT_STATIC = "PROJECT_STATIC"


@dataclass(frozen=True)
class PackageReference:
    """A node in a dependency tree: a package and its own dependencies."""

    id: Identifier
    linkage: PackageLinkage = PackageLinkage.DYNAMIC
    dependencies: FrozenSet["PackageReference"] = field(default_factory=frozenset)

    def _post_order(self) -> List["PackageReference"]:
        # Shared subtrees are visited once; trees can be deeper than the recursion limit.
        order: List[PackageReference] = []
        seen = set()
        stack = [(self, False)]
        while stack:
            ref, expanded = stack.pop()
            if expanded:
                order.append(ref)
            elif id(ref) not in seen:
                seen.add(id(ref))
                stack.append((ref, True))
                stack.extend((dep, False) for dep in ref.dependencies)
        return order

    def count_nodes(self) -> int:
        """Number of reference nodes in this tree, including this one."""
        counts: Dict[int, int] = {}
        for ref in self._post_order():
            counts[id(ref)] = 1 + sum(counts[id(dep)] for dep in ref.dependencies)
        return counts[id(self)]

    def to_dict(self) -> Dict[str, Any]:
        dicts: Dict[int, Dict[str, Any]] = {}
        for ref in self._post_order():
            result: Dict[str, Any] = {
                "id": ref.id.to_coordinates(),
                "linkage": ref.linkage.value,
            }
            if ref.dependencies:
                result["dependencies"] = [
                    dicts[id(dep)] for dep in sorted(ref.dependencies, key=lambda d: d.id)
                ]
            dicts[id(ref)] = result
        return dicts[id(self)]


@dataclass(frozen=True)
class Scope:
    """A named partition of a project's dependency forest."""

    name: str
    dependencies: FrozenSet[PackageReference] = field(default_factory=frozenset)

    def collect_identifiers(self) -> FrozenSet[Identifier]:
        """All identifiers referenced anywhere in this scope."""
        ids = set()
        stack = list(self.dependencies)
        while stack:
            ref = stack.pop()
            if ref.id in ids:
                continue
            ids.add(ref.id)
            stack.extend(ref.dependencies)
        return frozenset(ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "dependencies": [
                dep.to_dict() for dep in sorted(self.dependencies, key=lambda d: d.id)
            ],
        }
