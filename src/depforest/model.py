"""
Result model produced by the analyzer: packages, projects and their scopes.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .dependency import Identifier, Scope


class VcsType(Enum):
    """Version control systems a package can point at."""

    GIT = "Git"
    MERCURIAL = "Mercurial"
    SUBVERSION = "Subversion"
    UNKNOWN = ""

    @classmethod
    def for_name(cls, name: str) -> "VcsType":
        """Case-insensitive lookup, unknown names map to UNKNOWN."""
        for vcs_type in cls:
            if vcs_type.value.lower() == name.lower():
                return vcs_type
        return cls.UNKNOWN


@dataclass(frozen=True)
class VcsInfo:
    """Where the sources of a package live."""

    type: VcsType = VcsType.UNKNOWN
    url: str = ""
    revision: str = ""
    path: str = ""

    @property
    def is_empty(self) -> bool:
        return self == EMPTY_VCS_INFO

    def to_dict(self) -> Dict[str, str]:
        return {
            "type": self.type.value,
            "url": self.url,
            "revision": self.revision,
            "path": self.path,
        }


EMPTY_VCS_INFO = VcsInfo()


@dataclass(frozen=True)
class Hash:
    """A checksum of a remote artifact; an empty value means 'not known'."""

    value: str = ""
    algorithm: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"value": self.value, "algorithm": self.algorithm}


HASH_NONE = Hash()


@dataclass(frozen=True)
class RemoteArtifact:
    """A downloadable archive of a package."""

    url: str = ""
    hash: Hash = HASH_NONE

    @property
    def is_empty(self) -> bool:
        return not self.url

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "hash": self.hash.to_dict()}


EMPTY_REMOTE_ARTIFACT = RemoteArtifact()


@dataclass(frozen=True)
class Package:
    """Metadata of a single dependency package."""

    id: Identifier
    declared_licenses: FrozenSet[str] = field(default_factory=frozenset)
    authors: FrozenSet[str] = field(default_factory=frozenset)
    description: str = ""
    homepage_url: str = ""
    binary_artifact: RemoteArtifact = EMPTY_REMOTE_ARTIFACT
    source_artifact: RemoteArtifact = EMPTY_REMOTE_ARTIFACT
    vcs: VcsInfo = EMPTY_VCS_INFO

    def with_changes(self, **changes: Any) -> "Package":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.to_coordinates(),
            "declared_licenses": sorted(self.declared_licenses),
            "authors": sorted(self.authors),
            "description": self.description,
            "homepage_url": self.homepage_url,
            "binary_artifact": self.binary_artifact.to_dict(),
            "source_artifact": self.source_artifact.to_dict(),
            "vcs": self.vcs.to_dict(),
        }


@dataclass(frozen=True)
class Project:
    """The project a definition file describes, with its dependency scopes."""

    id: Identifier
    definition_file_path: str
    vcs: VcsInfo = EMPTY_VCS_INFO
    homepage_url: str = ""
    scopes: FrozenSet[Scope] = field(default_factory=frozenset)

    def get_scope(self, name: str) -> Optional[Scope]:
        return next((scope for scope in self.scopes if scope.name == name), None)

    @property
    def scope_names(self) -> List[str]:
        return sorted(scope.name for scope in self.scopes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.to_coordinates(),
            "definition_file_path": self.definition_file_path,
            "vcs": self.vcs.to_dict(),
            "homepage_url": self.homepage_url,
            "scopes": [
                scope.to_dict() for scope in sorted(self.scopes, key=lambda s: s.name)
            ],
        }


@dataclass(frozen=True)
class ProjectAnalyzerResult:
    """Outcome of resolving a single definition file."""

    project: Project
    packages: FrozenSet[Package] = field(default_factory=frozenset)
    issues: List[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.project.to_dict(),
            "packages": [
                pkg.to_dict() for pkg in sorted(self.packages, key=lambda p: p.id)
            ],
            "issues": list(self.issues),
        }


@dataclass
class AnalyzerResult:
    """All projects and packages found below an analysis root."""

    analysis_root: str
    results: List[ProjectAnalyzerResult] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def projects(self) -> List[Project]:
        return [result.project for result in self.results]

    @property
    def packages(self) -> List[Package]:
        by_id: Dict[Identifier, Package] = {}
        for result in self.results:
            for pkg in result.packages:
                by_id.setdefault(pkg.id, pkg)
        return [by_id[pkg_id] for pkg_id in sorted(by_id)]

    @property
    def has_issues(self) -> bool:
        return any(result.failed for result in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_root": self.analysis_root,
            "duration_ms": self.duration_ms,
            "results": [result.to_dict() for result in self.results],
        }


def empty_project(id: Identifier, definition_file_path: str) -> Project:
    """Placeholder project for a definition file whose resolution failed."""
    return Project(id=id, definition_file_path=definition_file_path)
