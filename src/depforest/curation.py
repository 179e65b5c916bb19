"""
Package curations: corrections of package metadata applied after analysis.

Providers are created from configuration through factories registered by
type. Curations of lower priority providers are applied first, so higher
priority providers have the last word.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

from .dependency import Identifier
from .error_handling import ConfigurationError
from .model import Package, RemoteArtifact, VcsInfo, VcsType
from .structured_logging import get_analyzer_logger


@dataclass(frozen=True)
class VcsCuration:
    type: Optional[str] = None
    url: Optional[str] = None
    revision: Optional[str] = None
    path: Optional[str] = None

    def apply(self, vcs: VcsInfo) -> VcsInfo:
        return VcsInfo(
            type=VcsType.for_name(self.type) if self.type is not None else vcs.type,
            url=self.url if self.url is not None else vcs.url,
            revision=self.revision if self.revision is not None else vcs.revision,
            path=self.path if self.path is not None else vcs.path,
        )


@dataclass(frozen=True)
class PackageCurationData:
    """The fields a curation overrides; None leaves a field untouched."""

    comment: Optional[str] = None
    description: Optional[str] = None
    homepage_url: Optional[str] = None
    source_artifact_url: Optional[str] = None
    vcs: Optional[VcsCuration] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackageCurationData":
        vcs = data.get("vcs")
        if vcs is not None and not isinstance(vcs, dict):
            raise ValueError(f"'vcs' must be a mapping, got {vcs!r}")
        return cls(
            comment=data.get("comment"),
            description=data.get("description"),
            homepage_url=data.get("homepage_url"),
            source_artifact_url=data.get("source_artifact_url"),
            vcs=VcsCuration(**vcs) if vcs is not None else None,
        )


@dataclass(frozen=True)
class PackageCuration:
    """A correction for the package with the given id."""

    id: Identifier
    data: PackageCurationData = field(default_factory=PackageCurationData)

    def is_applicable(self, pkg_id: Identifier) -> bool:
        """An empty curation version matches every version of the package."""
        return (
            self.id.type == pkg_id.type
            and self.id.namespace == pkg_id.namespace
            and self.id.name == pkg_id.name
            and self.id.version in ("", pkg_id.version)
        )

    def apply(self, package: Package) -> Package:
        if not self.is_applicable(package.id):
            raise ValueError(f"Curation for '{self.id}' does not apply to '{package.id}'.")

        changes: Dict[str, Any] = {}
        if self.data.description is not None:
            changes["description"] = self.data.description
        if self.data.homepage_url is not None:
            changes["homepage_url"] = self.data.homepage_url
        if self.data.source_artifact_url is not None:
            changes["source_artifact"] = RemoteArtifact(url=self.data.source_artifact_url)
        if self.data.vcs is not None:
            changes["vcs"] = self.data.vcs.apply(package.vcs)
        return package.with_changes(**changes) if changes else package

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PackageCuration":
        """
        Create a curation from its configuration mapping.

        Raises:
            ConfigurationError: If the id or any curated field is malformed
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Curation must be a mapping: {data!r}")
        if "id" not in data:
            raise ConfigurationError(f"Curation without an 'id': {data!r}")
        try:
            return cls(
                id=Identifier.from_coordinates(str(data["id"])),
                data=PackageCurationData.from_dict(data.get("curations") or {}),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid curation for '{data['id']}': {e}") from e


class PackageCurationProvider(ABC):
    """A source of package curations."""

    @abstractmethod
    def get_curations_for(
        self, pkg_ids: Collection[Identifier]
    ) -> Dict[Identifier, List[PackageCuration]]:
        """
        Return the curations for the given package ids.

        Packages without curations have no key in the result, so every
        returned list is non-empty.
        """


class SimplePackageCurationProvider(PackageCurationProvider):
    """Provides a fixed list of curations."""

    def __init__(self, curations: Iterable[PackageCuration]):
        self.curations = list(curations)

    def get_curations_for(
        self, pkg_ids: Collection[Identifier]
    ) -> Dict[Identifier, List[PackageCuration]]:
        result: Dict[Identifier, List[PackageCuration]] = {}
        for pkg_id in pkg_ids:
            applicable = [c for c in self.curations if c.is_applicable(pkg_id)]
            if applicable:
                result[pkg_id] = applicable
        return result


class FilePackageCurationProvider(SimplePackageCurationProvider):
    """Reads curations from a YAML or JSON file holding a list of curations."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._read_curations())

    def _read_curations(self) -> List[PackageCuration]:
        try:
            with open(self.path, encoding="utf-8") as f:
                if self.path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read curations from {self.path}: {e}") from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise ConfigurationError(f"Curation file {self.path} must contain a list.")
        curations = []
        for number, entry in enumerate(data, start=1):
            try:
                curations.append(PackageCuration.from_dict(entry))
            except ConfigurationError as e:
                raise ConfigurationError(f"Curation #{number} in {self.path}: {e}") from e
        return curations


class PackageCurationProviderFactory(ABC):
    """Creates curation providers of one type from a configuration mapping."""

    type: str = ""

    @abstractmethod
    def create(self, config: Mapping[str, Any]) -> PackageCurationProvider:
        """Create a provider with the given configuration."""


class FilePackageCurationProviderFactory(PackageCurationProviderFactory):
    type = "File"

    def create(self, config: Mapping[str, Any]) -> PackageCurationProvider:
        if "path" not in config:
            raise ConfigurationError("The 'File' curation provider requires a 'path'.")
        return FilePackageCurationProvider(Path(config["path"]).expanduser())


class SimplePackageCurationProviderFactory(PackageCurationProviderFactory):
    type = "Simple"

    def create(self, config: Mapping[str, Any]) -> PackageCurationProvider:
        return SimplePackageCurationProvider(
            PackageCuration.from_dict(entry) for entry in config.get("curations") or []
        )


CURATION_PROVIDERS: Dict[str, PackageCurationProviderFactory] = {
    factory.type: factory
    for factory in (
        FilePackageCurationProviderFactory(),
        SimplePackageCurationProviderFactory(),
    )
}


def create_curation_providers(
    configurations: Sequence[Mapping[str, Any]],
) -> List[PackageCurationProvider]:
    """
    Create a provider for each enabled configuration.

    The configurations are ordered highest priority first, the returned
    providers lowest priority first, which is the order to apply them in.
    """
    providers = []
    for configuration in configurations:
        if not configuration.get("enabled", True):
            continue
        provider_type = configuration.get("type", "")
        factory = CURATION_PROVIDERS.get(provider_type)
        if factory is None:
            raise ConfigurationError(f"Unknown curation provider type: {provider_type}")
        providers.append(factory.create(configuration.get("config") or {}))
    return list(reversed(providers))


def apply_curations(
    packages: Iterable[Package], providers: Sequence[PackageCurationProvider]
) -> List[Package]:
    """Apply the curations of all providers, lowest priority first."""
    curated = {package.id: package for package in packages}

    for provider in providers:
        curations = provider.get_curations_for(list(curated))
        for pkg_id, pkg_curations in curations.items():
            for curation in pkg_curations:
                curated[pkg_id] = curation.apply(curated[pkg_id])
                get_analyzer_logger().debug(
                    "package_curated", package=str(pkg_id), comment=curation.data.comment or ""
                )

    return list(curated.values())
