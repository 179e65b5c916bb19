"""
Resolving Python requirements with python-inspector.

See https://github.com/aboutcode-org/python-inspector.
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .command_line_tool import CommandLineTool
from .dependency import Identifier, PackageLinkage, PackageReference
from .error_handling import MalformedInputError
from .model import Package

PYPI_PACKAGE_TYPE = "PyPI"


class PythonInspector(CommandLineTool):
    """Wrapper around the python-inspector command line."""

    def __init__(self, executable: str = "python-inspector"):
        self.executable = executable

    def command(self, working_dir: Optional[Path] = None) -> str:
        return self.executable

    def transform_version(self, output: str) -> str:
        # "Python-inspector version: 0.10.0"
        return output.strip().rsplit(" ", 1)[-1]

    def inspect(
        self,
        requirements_file: Path,
        python_version: str,
        operating_system: str,
        working_dir: Optional[Path] = None,
    ) -> Dict[str, Any]:
        """Resolve the requirements file and return the parsed JSON result."""
        with tempfile.TemporaryDirectory(prefix="depforest-inspector-") as output_dir:
            output_file = Path(output_dir) / "python-inspector.json"
            self.run(
                "--python-version",
                python_version.replace(".", ""),
                "--operating-system",
                operating_system,
                "--json-pdt",
                str(output_file),
                "--requirement",
                str(requirements_file),
                working_dir=working_dir,
            )

            try:
                with open(output_file, encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                raise MalformedInputError(f"Invalid python-inspector result: {e}") from e


def package_id(name: str, version: str) -> Identifier:
    return Identifier(type=PYPI_PACKAGE_TYPE, namespace="", name=name, version=version)


def _declared_licenses(data: Mapping[str, Any]) -> FrozenSet[str]:
    declared = data.get("declared_license")
    if isinstance(declared, dict) and isinstance(declared.get("license"), str):
        return frozenset([declared["license"].strip()]) if declared["license"].strip() else frozenset()
    if isinstance(declared, str) and declared.strip():
        return frozenset([declared.strip()])
    return frozenset()


def to_packages(result: Mapping[str, Any]) -> List[Package]:
    """Convert the 'packages' of a python-inspector result."""
    packages = []
    for data in result.get("packages") or []:
        if not isinstance(data, dict) or not data.get("name"):
            continue
        packages.append(
            Package(
                id=package_id(data["name"], data.get("version") or ""),
                declared_licenses=_declared_licenses(data),
                description=(data.get("description") or "").strip(),
                homepage_url=data.get("homepage_url") or "",
            )
        )
    return packages


def to_package_references(result: Mapping[str, Any]) -> FrozenSet[PackageReference]:
    """Convert the 'resolved_dependencies_graph' of a python-inspector result."""

    def to_reference(node: Mapping[str, Any]) -> PackageReference:
        return PackageReference(
            id=package_id(node.get("package_name") or node.get("key", ""), node.get("installed_version") or ""),
            linkage=PackageLinkage.DYNAMIC,
            dependencies=frozenset(to_reference(child) for child in node.get("dependencies") or []),
        )

    nodes = result.get("resolved_dependencies_graph") or []
    if not isinstance(nodes, list):
        raise MalformedInputError("'resolved_dependencies_graph' must be a list")
    return frozenset(to_reference(node) for node in nodes if isinstance(node, dict))
