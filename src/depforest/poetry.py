"""
The Poetry package manager for Python, see https://python-poetry.org/.

Each dependency group is exported to a requirements file which is then
resolved with python-inspector.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set

import toml

from .cli_config import ComprehensiveConfig
from .command_line_tool import CommandLineTool
from .dependency import Identifier, Scope
from .error_handling import log_parsing_error
from .model import Package, Project, ProjectAnalyzerResult
from .package_manager import PackageManager, PackageManagerFactory, register_package_manager
from .python_inspector import PythonInspector, to_package_references, to_packages
from .structured_logging import get_analyzer_logger

POETRY_MANAGER_NAME = "Poetry"
PYPROJECT_FILENAME = "pyproject.toml"


def parse_scope_names_from_pyproject(pyproject_file: Path) -> Set[str]:
    """
    Return the dependency group names declared in pyproject.toml.

    Handles both '[tool.poetry.<scope>-dependencies]' and
    '[tool.poetry.group.<scope>.dependencies]'. The implicit 'main' group is
    always present.
    """
    scopes = {"main"}

    if not pyproject_file.is_file():
        return scopes

    try:
        data = toml.load(pyproject_file)
    except (OSError, toml.TomlDecodeError) as e:
        log_parsing_error(
            f"Cannot parse {PYPROJECT_FILENAME}: {e}",
            "poetry",
            "parse_scope_names_from_pyproject",
            file_path=str(pyproject_file),
            exception=e,
        )
        return scopes

    poetry: Mapping[str, Any] = data.get("tool", {}).get("poetry", {})

    for key in poetry:
        if key.endswith("-dependencies"):
            scope = key[: -len("-dependencies")]
            if scope:
                scopes.add(scope)

    groups = poetry.get("group", {})
    if isinstance(groups, dict):
        for name, group in groups.items():
            if isinstance(group, dict) and "dependencies" in group:
                scopes.add(name)

    return scopes


class Poetry(PackageManager, CommandLineTool):
    """Resolves poetry.lock files into one scope per dependency group."""

    def __init__(
        self,
        manager_name: str,
        analysis_root: Path,
        config: Optional[ComprehensiveConfig] = None,
    ):
        super().__init__(manager_name, analysis_root, config)
        self.inspector = PythonInspector(self.config.python.inspector_command)

    def command(self, working_dir: Optional[Path] = None) -> str:
        return "poetry"

    def transform_version(self, output: str) -> str:
        # "Poetry (version 1.8.3)"
        version = output.strip()
        if "version " in version:
            version = version.split("version ", 1)[1]
        return version.rstrip(")")

    def resolve_dependencies(self, definition_file: Path) -> List[ProjectAnalyzerResult]:
        scope_names = parse_scope_names_from_pyproject(
            definition_file.with_name(PYPROJECT_FILENAME)
        )
        results_for_scope = {
            scope_name: self.inspect_lockfile(definition_file, scope_name)
            for scope_name in sorted(scope_names)
        }

        packages: Dict[Identifier, Package] = {}
        for result in results_for_scope.values():
            for package in to_packages(result):
                packages.setdefault(package.id, package)

        relative_path = self.relative_path(definition_file)
        project = Project(
            id=Identifier(
                type=self.manager_name,
                namespace="",
                name=relative_path,
                version="",
            ),
            definition_file_path=relative_path,
            scopes=frozenset(
                Scope(scope_name, to_package_references(result))
                for scope_name, result in results_for_scope.items()
            ),
        )

        return [ProjectAnalyzerResult(project=project, packages=frozenset(packages.values()))]

    def inspect_lockfile(self, lockfile: Path, dependency_group_name: str) -> Dict[str, Any]:
        """
        Run python-inspector on the requirements of one dependency group,
        exported from the lockfile with 'poetry export'.
        """
        working_dir = lockfile.parent
        get_analyzer_logger().info(
            "exporting_requirements", group=dependency_group_name, working_dir=str(working_dir)
        )

        requirements = self.run(
            "export",
            "--without-hashes",
            "--format=requirements.txt",
            f"--only={dependency_group_name}",
            working_dir=working_dir,
        ).stdout

        fd, requirements_path = tempfile.mkstemp(prefix="depforest-", suffix="-requirements.txt")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(requirements)

            return self.inspector.inspect(
                Path(requirements_path),
                self.config.python.python_version,
                self.config.python.operating_system,
                working_dir=working_dir,
            )
        finally:
            os.unlink(requirements_path)


class PoetryFactory(PackageManagerFactory):
    type = POETRY_MANAGER_NAME
    globs_for_definition_files = ("poetry.lock",)

    def create(
        self, analysis_root: Path, config: Optional[ComprehensiveConfig] = None
    ) -> Poetry:
        return Poetry(self.type, analysis_root, config)


register_package_manager(PoetryFactory())
