"""
Package manager backends and their registry.

A backend turns one definition file (go.mod, poetry.lock, ...) into a
ProjectAnalyzerResult. Backends are registered by name through factories so
the analyzer can select them from configuration.
"""

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .cli_config import ComprehensiveConfig, get_config
from .dependency import Identifier
from .error_handling import (
    CommandError,
    DepforestError,
    ErrorCategory,
    get_error_handler,
    log_command_error,
)
from .model import ProjectAnalyzerResult, empty_project
from .structured_logging import log_resolution_complete, log_resolution_start


class PackageManager(ABC):
    """Base class for package manager backends."""

    def __init__(
        self,
        manager_name: str,
        analysis_root: Path,
        config: Optional[ComprehensiveConfig] = None,
    ):
        """
        Initialize the backend.

        Args:
            manager_name: Name the backend is registered under, used as the
                type of project identifiers
            analysis_root: Root directory of the analyzed repository
            config: Configuration, the global one if omitted
        """
        self.manager_name = manager_name
        self.analysis_root = Path(analysis_root).resolve()
        self.config = config or get_config()
        self.error_handler = get_error_handler()

    def map_definition_files(self, definition_files: List[Path]) -> List[Path]:
        """Filter or transform the definition files found for this backend."""
        return definition_files

    @abstractmethod
    def resolve_dependencies(self, definition_file: Path) -> List[ProjectAnalyzerResult]:
        """Resolve the dependency tree of a definition file."""

    def relative_path(self, definition_file: Path) -> str:
        try:
            return Path(definition_file).resolve().relative_to(self.analysis_root).as_posix()
        except ValueError:
            return Path(definition_file).as_posix()

    def cleanup(self) -> None:
        """Release resources such as temporary directories."""

    def __enter__(self) -> "PackageManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    def resolve(self, definition_file: Path) -> List[ProjectAnalyzerResult]:
        """
        Resolve a definition file, turning fatal errors into a failed result.

        A failure aborts only the project of this definition file.
        """
        relative_path = self.relative_path(definition_file)
        log_resolution_start(relative_path, self.manager_name)
        started = time.monotonic()

        try:
            results = self.resolve_dependencies(Path(definition_file))
        except CommandError as e:
            log_command_error(e, self.manager_name, "resolve_dependencies")
            results = [self.failed_result(relative_path, e)]
        except (DepforestError, OSError, ValueError) as e:
            self.error_handler.error(
                ErrorCategory.VALIDATION,
                f"Resolving dependencies failed: {e}",
                self.manager_name,
                "resolve_dependencies",
                exception=e,
                details={"definition_file": relative_path},
            )
            results = [self.failed_result(relative_path, e)]

        log_resolution_complete(
            int((time.monotonic() - started) * 1000),
            sum(len(result.packages) for result in results),
            sorted({name for result in results for name in result.project.scope_names}),
            sum(len(result.issues) for result in results),
        )
        return results

    def failed_result(self, relative_path: str, error: Exception) -> ProjectAnalyzerResult:
        project_id = Identifier(self.manager_name, "", relative_path, "")
        return ProjectAnalyzerResult(
            project=empty_project(project_id, relative_path),
            issues=[f"{type(error).__name__}: {error}"],
        )


class PackageManagerFactory(ABC):
    """Creates backends of one type and knows which files they handle."""

    type: str = ""
    globs_for_definition_files: Sequence[str] = ()

    @abstractmethod
    def create(
        self, analysis_root: Path, config: Optional[ComprehensiveConfig] = None
    ) -> PackageManager:
        """Create a backend for the given analysis root."""

    def find_definition_files(self, analysis_root: Path) -> List[Path]:
        found = set()
        for pattern in self.globs_for_definition_files:
            for hit in Path(analysis_root).rglob(pattern):
                if hit.is_file():
                    found.add(hit)
        return sorted(found)


PACKAGE_MANAGERS: Dict[str, PackageManagerFactory] = {}


def register_package_manager(factory: PackageManagerFactory) -> PackageManagerFactory:
    """Register a factory by its type name."""
    PACKAGE_MANAGERS[factory.type] = factory
    return factory


def get_package_manager_factory(name: str) -> PackageManagerFactory:
    """
    Return the factory registered under the given name.

    Raises:
        ValueError: If no such package manager is registered
    """
    try:
        return PACKAGE_MANAGERS[name]
    except KeyError:
        available = ", ".join(sorted(PACKAGE_MANAGERS)) or "none"
        raise ValueError(
            f"Unsupported package manager: {name} (available: {available})"
        ) from None
