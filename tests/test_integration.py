"""
Integration tests for depforest.
Tests the package manager backends, curations and complete analyzer runs.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import MAIN_MODULE, MODULE_B, MODULE_C, FakeGo, module_stream
from depforest.analyzer import analyze
from depforest.command_line_tool import ProcessResult
from depforest.curation import (
    FilePackageCurationProvider,
    PackageCuration,
    PackageCurationData,
    SimplePackageCurationProvider,
    apply_curations,
    create_curation_providers,
)
from depforest.dependency import Identifier, PackageLinkage, PackageReference
from depforest.error_handling import (
    CommandError,
    ConfigurationError,
    ErrorCategory,
    ResolutionError,
    get_error_handler,
)
from depforest.go_mod import GoMod
from depforest.model import Package, Project, ProjectAnalyzerResult
from depforest.package_manager import PACKAGE_MANAGERS, get_package_manager_factory
from depforest.poetry import Poetry, parse_scope_names_from_pyproject
from depforest.python_inspector import PythonInspector, to_package_references, to_packages


def go_id(name, version="1.0.0"):
    return Identifier("Go", "", name, version)


def ref(pkg_id, *children):
    return PackageReference(pkg_id, PackageLinkage.PROJECT_STATIC, frozenset(children))


class TestGoModResolution:
    """Test resolving go.mod files with canned 'go' output."""

    def _resolve(self, go_project, config, fake_go):
        manager = GoMod("GoMod", go_project.parent, config)
        manager.run_go = fake_go
        with manager:
            results = manager.resolve(go_project)
        assert len(results) == 1
        return results[0]

    def test_main_and_vendor_scope(self, go_project, config, simple_module_list, simple_module_graph):
        """Test a main module A using B which uses the indirect module C."""
        fake_go = FakeGo(simple_module_list, simple_module_graph, deps=[MAIN_MODULE, MODULE_B, MODULE_C])

        result = self._resolve(go_project, config, fake_go)

        assert not result.failed
        project = result.project
        assert project.id == Identifier("GoMod", "", MAIN_MODULE, "")
        assert project.definition_file_path == "go.mod"
        assert project.scope_names == ["main", "vendor"]

        expected = frozenset([ref(go_id(MODULE_B), ref(go_id(MODULE_C)))])
        assert project.get_scope("main").dependencies == expected
        assert project.get_scope("vendor").dependencies == expected

        assert {pkg.id for pkg in result.packages} == {go_id(MODULE_B), go_id(MODULE_C)}

    def test_test_only_module_is_vendor_only(
        self, go_project, config, simple_module_list, simple_module_graph
    ):
        """Test that modules only needed by tests stay out of the main scope."""
        fake_go = FakeGo(simple_module_list, simple_module_graph, deps=[MAIN_MODULE, MODULE_B])

        project = self._resolve(go_project, config, fake_go).project

        assert project.get_scope("main").dependencies == frozenset([ref(go_id(MODULE_B))])
        assert project.get_scope("vendor").dependencies == frozenset(
            [ref(go_id(MODULE_B), ref(go_id(MODULE_C)))]
        )

    def test_unused_modules_are_pruned(self, go_project, config):
        """Test that modules without 'go mod why' evidence are not packages."""
        module_list = module_stream(
            {"Path": MAIN_MODULE, "Main": True},
            {"Path": MODULE_B, "Version": "v1.0.0"},
            {"Path": "example.com/d", "Version": "v2.0.0+incompatible", "Indirect": True},
        )
        module_graph = f"{MAIN_MODULE} {MODULE_B}@v1.0.0\n{MODULE_B}@v1.0.0 example.com/d@v2.0.0+incompatible\n"
        fake_go = FakeGo(module_list, module_graph, deps=[MAIN_MODULE, MODULE_B], unused=["example.com/d"])

        result = self._resolve(go_project, config, fake_go)

        assert {pkg.id for pkg in result.packages} == {go_id(MODULE_B)}
        assert result.project.get_scope("vendor").dependencies == frozenset([ref(go_id(MODULE_B))])

    def test_replaced_module(self, go_project, config):
        """Test that replacements are queried by their go.mod name and become the package."""
        module_list = module_stream(
            {"Path": MAIN_MODULE, "Main": True},
            {
                "Path": MODULE_B,
                "Version": "v1.0.0",
                "Replace": {"Path": "example.com/fork/b", "Version": "v1.1.0"},
            },
        )
        fake_go = FakeGo(module_list, f"{MAIN_MODULE} {MODULE_B}@v1.0.0\n", deps=[MAIN_MODULE, MODULE_B])

        result = self._resolve(go_project, config, fake_go)

        fork = go_id("example.com/fork/b", "1.1.0")
        why_calls = [call for call in fake_go.calls if call[:2] == ("mod", "why")]
        assert why_calls and MODULE_B in why_calls[0]
        assert "example.com/fork/b" not in why_calls[0]
        assert result.project.get_scope("main").dependencies == frozenset([ref(fork)])
        assert {pkg.id for pkg in result.packages} == {fork}

    def test_source_artifacts_and_proxy(
        self, go_project, config, simple_module_list, simple_module_graph, monkeypatch
    ):
        """Test that packages without VCS info point at the module proxy."""
        monkeypatch.setenv("GOPROXY", "https://goproxy.example.com,direct")
        fake_go = FakeGo(simple_module_list, simple_module_graph, deps=[MAIN_MODULE, MODULE_B])

        result = self._resolve(go_project, config, fake_go)

        package_b = next(pkg for pkg in result.packages if pkg.id == go_id(MODULE_B))
        assert package_b.source_artifact.url == "https://goproxy.example.com/example.com/b/@v/v1.0.0.zip"
        assert package_b.vcs.is_empty

    def test_vendor_directory_is_stashed(
        self, go_project, config, simple_module_list, simple_module_graph
    ):
        """Test that the vendor directory is hidden during resolution and restored after."""
        vendor = go_project.parent / "vendor"
        vendor.mkdir()
        (vendor / "modules.txt").write_text("# example.com/b v1.0.0\n", encoding="utf-8")
        fake_go = FakeGo(simple_module_list, simple_module_graph, deps=[MAIN_MODULE])

        self._resolve(go_project, config, fake_go)

        assert fake_go.vendor_seen and not any(fake_go.vendor_seen)
        assert (vendor / "modules.txt").exists()

    def test_why_chunk_size_from_config(self, go_project, config, simple_module_list, simple_module_graph):
        """Test that the configured chunk size bounds each 'go mod why' call."""
        config.go.why_chunk_size = 1
        fake_go = FakeGo(simple_module_list, simple_module_graph, deps=[MAIN_MODULE])

        self._resolve(go_project, config, fake_go)

        why_calls = [call for call in fake_go.calls if call[:2] == ("mod", "why")]
        assert len(why_calls) == 3

    def test_failing_command(self, go_project, config):
        """Test that a failing 'go' command fails only this project."""

        def failing_go(*args, working_dir):
            raise CommandError(("go",) + args, 1, "go: updates to go.mod needed")

        manager = GoMod("GoMod", go_project.parent, config)
        manager.run_go = failing_go
        results = manager.resolve(go_project)

        assert len(results) == 1
        assert results[0].failed
        assert results[0].project.id == Identifier("GoMod", "", "go.mod", "")
        assert "updates to go.mod needed" in results[0].issues[0]

    def test_missing_main_module(self, go_project, config):
        """Test that output without a main module is reported as an issue."""
        fake_go = FakeGo(module_stream({"Path": MODULE_B, "Version": "v1.0.0"}), "", deps=[])

        result = self._resolve(go_project, config, fake_go)

        assert result.failed
        assert result.issues[0].startswith("ResolutionError")

    def test_vendored_definition_files_are_ignored(self, temp_dir, config):
        """Test that go.mod files inside vendor directories are dropped."""
        files = [temp_dir / "go.mod", temp_dir / "vendor" / "example.com" / "b" / "go.mod"]
        manager = GoMod("GoMod", temp_dir, config)

        assert manager.map_definition_files(files) == [temp_dir / "go.mod"]

    def test_version(self, temp_dir, config):
        """Test extracting the version of 'go version' output."""
        manager = GoMod("GoMod", temp_dir, config)

        assert manager.transform_version("go version go1.21.1 linux/amd64\n") == "1.21.1"
        assert manager.version_requirement() == "1.21.1"

    def test_check_version(self, temp_dir, config):
        """Test that a sufficient version is logged and a too old one rejected."""
        manager = GoMod("GoMod", temp_dir, config)

        with patch.object(GoMod, "get_version", return_value="1.22.0"), patch(
            "depforest.command_line_tool.get_tool_logger"
        ) as mock_logger:
            assert manager.check_version(temp_dir) == "1.22.0"
        mock_logger.return_value.debug.assert_called_once_with(
            "tool_version_checked", tool="go", version="1.22.0"
        )

        with patch.object(GoMod, "get_version", return_value="1.20.5"):
            with pytest.raises(ConfigurationError, match="1.20.5"):
                manager.check_version(temp_dir)


class TestPoetry:
    """Test the Poetry backend."""

    def test_scope_names(self, temp_dir):
        """Test reading both styles of dependency group declarations."""
        pyproject = temp_dir / "pyproject.toml"
        pyproject.write_text(
            """
[tool.poetry]
name = "demo"

[tool.poetry.dependencies]
python = "^3.11"
requests = "^2.31"

[tool.poetry.dev-dependencies]
pytest = "^7.0"

[tool.poetry.group.docs.dependencies]
mkdocs = "*"

[tool.poetry.group.empty]
optional = true
""",
            encoding="utf-8",
        )

        assert parse_scope_names_from_pyproject(pyproject) == {"main", "dev", "docs"}

    def test_scope_names_without_pyproject(self, temp_dir):
        """Test that 'main' is always a scope."""
        assert parse_scope_names_from_pyproject(temp_dir / "pyproject.toml") == {"main"}

    def test_scope_names_broken_pyproject(self, temp_dir):
        """Test that an unparsable pyproject.toml is a soft failure."""
        pyproject = temp_dir / "pyproject.toml"
        pyproject.write_text("[tool.poetry\nname = ", encoding="utf-8")

        assert parse_scope_names_from_pyproject(pyproject) == {"main"}

    def test_resolve_dependencies(self, temp_dir, config):
        """Test one scope per dependency group from the inspector results."""
        (temp_dir / "pyproject.toml").write_text(
            "[tool.poetry.group.dev.dependencies]\npytest = '*'\n", encoding="utf-8"
        )
        lockfile = temp_dir / "poetry.lock"
        lockfile.write_text("", encoding="utf-8")

        inspector_results = {
            "main": {
                "packages": [{"name": "requests", "version": "2.31.0", "declared_license": "Apache-2.0"}],
                "resolved_dependencies_graph": [
                    {"package_name": "requests", "installed_version": "2.31.0", "dependencies": []}
                ],
            },
            "dev": {
                "packages": [{"name": "pytest", "version": "7.4.0"}],
                "resolved_dependencies_graph": [
                    {"package_name": "pytest", "installed_version": "7.4.0", "dependencies": []}
                ],
            },
        }

        with patch.object(
            Poetry, "inspect_lockfile", side_effect=lambda lock, group: inspector_results[group]
        ):
            results = Poetry("Poetry", temp_dir, config).resolve(lockfile)

        project = results[0].project
        assert project.id == Identifier("Poetry", "", "poetry.lock", "")
        assert project.scope_names == ["dev", "main"]
        assert project.get_scope("main").collect_identifiers() == frozenset(
            [Identifier("PyPI", "", "requests", "2.31.0")]
        )
        packages = {pkg.id.name: pkg for pkg in results[0].packages}
        assert set(packages) == {"requests", "pytest"}
        assert packages["requests"].declared_licenses == frozenset(["Apache-2.0"])

    def test_inspect_lockfile(self, temp_dir, config):
        """Test exporting a group and handing the requirements to python-inspector."""
        lockfile = temp_dir / "poetry.lock"
        lockfile.write_text("", encoding="utf-8")
        seen = {}

        def fake_inspect(requirements_file, python_version, operating_system, working_dir=None):
            seen["path"] = requirements_file
            seen["content"] = requirements_file.read_text(encoding="utf-8")
            seen["python_version"] = python_version
            return {"packages": []}

        export = ProcessResult(("poetry", "export"), 0, "requests==2.31.0\n", "")
        with patch.object(Poetry, "run", return_value=export) as mock_run, patch.object(
            PythonInspector, "inspect", side_effect=fake_inspect
        ):
            result = Poetry("Poetry", temp_dir, config).inspect_lockfile(lockfile, "main")

        assert result == {"packages": []}
        assert "--only=main" in mock_run.call_args[0]
        assert seen["content"] == "requests==2.31.0\n"
        assert seen["python_version"] == "3.11"
        assert not Path(seen["path"]).exists()


class TestPythonInspector:
    """Test converting python-inspector results."""

    def test_package_references(self):
        """Test the nested dependency graph."""
        result = {
            "resolved_dependencies_graph": [
                {
                    "key": "requests",
                    "package_name": "requests",
                    "installed_version": "2.31.0",
                    "dependencies": [
                        {"key": "idna", "package_name": "idna", "installed_version": "3.4", "dependencies": []}
                    ],
                }
            ]
        }

        references = to_package_references(result)

        idna = PackageReference(Identifier("PyPI", "", "idna", "3.4"), PackageLinkage.DYNAMIC)
        assert references == frozenset(
            [
                PackageReference(
                    Identifier("PyPI", "", "requests", "2.31.0"),
                    PackageLinkage.DYNAMIC,
                    frozenset([idna]),
                )
            ]
        )

    def test_packages(self):
        """Test package metadata and skipping nameless entries."""
        result = {
            "packages": [
                {
                    "name": "idna",
                    "version": "3.4",
                    "declared_license": {"license": "BSD"},
                    "homepage_url": "https://github.com/kjd/idna",
                },
                {"version": "1.0"},
            ]
        }

        packages = to_packages(result)

        assert len(packages) == 1
        assert packages[0].declared_licenses == frozenset(["BSD"])
        assert packages[0].homepage_url == "https://github.com/kjd/idna"

    def test_inspector_version(self):
        """Test extracting the version of python-inspector."""
        assert PythonInspector().transform_version("Python-inspector version: 0.10.0\n") == "0.10.0"


class TestCurations:
    """Test package curations and their providers."""

    def test_apply_curation(self):
        """Test overriding metadata fields."""
        package = Package(go_id(MODULE_B))
        curation = PackageCuration(
            Identifier("Go", "", MODULE_B, ""),
            PackageCurationData(homepage_url="https://b.example.com", description="B"),
        )

        curated = curation.apply(package)

        assert curated.homepage_url == "https://b.example.com"
        assert curated.description == "B"
        assert curated.id == package.id

    def test_version_specific_curation(self):
        """Test that a curation with a version only applies to that version."""
        curation = PackageCuration(go_id(MODULE_B, "2.0.0"))

        assert not curation.is_applicable(go_id(MODULE_B))
        with pytest.raises(ValueError):
            curation.apply(Package(go_id(MODULE_B)))

    def test_file_provider(self, temp_dir):
        """Test reading curations from a YAML file."""
        curations_file = temp_dir / "curations.yml"
        curations_file.write_text(
            f"""
- id: "Go::{MODULE_B}:1.0.0"
  curations:
    comment: "Fix repository URL"
    vcs:
      type: "Git"
      url: "https://github.com/example/b.git"
""",
            encoding="utf-8",
        )

        provider = FilePackageCurationProvider(curations_file)
        curations = provider.get_curations_for([go_id(MODULE_B), go_id(MODULE_C)])

        assert list(curations) == [go_id(MODULE_B)]
        curated = apply_curations([Package(go_id(MODULE_B))], [provider])[0]
        assert curated.vcs.url == "https://github.com/example/b.git"

    def test_file_provider_invalid(self, temp_dir):
        """Test that a file without a list of curations is rejected."""
        curations_file = temp_dir / "curations.json"
        curations_file.write_text(json.dumps({"id": "x"}), encoding="utf-8")

        with pytest.raises(ConfigurationError):
            FilePackageCurationProvider(curations_file)

    def test_file_provider_unknown_vcs_field(self, temp_dir):
        """Test that an unknown VCS field names the file and the entry."""
        curations_file = temp_dir / "curations.yml"
        curations_file.write_text(
            f"""
- id: "Go::{MODULE_B}:1.0.0"
  curations:
    vcs:
      branch: "main"
""",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError) as exc_info:
            create_curation_providers([{"type": "File", "config": {"path": str(curations_file)}}])

        message = str(exc_info.value)
        assert "Curation #1" in message
        assert str(curations_file) in message
        assert "branch" in message

    def test_invalid_coordinates(self):
        """Test that a curation id without four coordinates is rejected."""
        configurations = [
            {"type": "Simple", "config": {"curations": [{"id": "foo", "curations": {}}]}}
        ]

        with pytest.raises(ConfigurationError, match="foo"):
            create_curation_providers(configurations)

    def test_vcs_must_be_a_mapping(self):
        """Test that a scalar VCS curation is rejected."""
        with pytest.raises(ConfigurationError, match="vcs"):
            PackageCuration.from_dict({"id": f"Go::{MODULE_B}:", "curations": {"vcs": "git"}})

    def test_entry_must_be_a_mapping(self, temp_dir):
        """Test that a list entry which is not a mapping is rejected."""
        curations_file = temp_dir / "curations.json"
        curations_file.write_text(json.dumps(["Go::x:1"]), encoding="utf-8")

        with pytest.raises(ConfigurationError, match="mapping"):
            FilePackageCurationProvider(curations_file)

    def test_provider_priority(self):
        """Test that the first configured provider has the last word."""
        configurations = [
            {"type": "Simple", "config": {"curations": [{"id": f"Go::{MODULE_B}:", "curations": {"description": "high"}}]}},
            {"type": "Simple", "enabled": False, "config": {"curations": [{"id": f"Go::{MODULE_B}:", "curations": {"description": "disabled"}}]}},
            {"type": "Simple", "config": {"curations": [{"id": f"Go::{MODULE_B}:", "curations": {"description": "low"}}]}},
        ]

        providers = create_curation_providers(configurations)
        curated = apply_curations([Package(go_id(MODULE_B))], providers)

        assert len(providers) == 2
        assert curated[0].description == "high"

    def test_invalid_provider_configuration(self):
        """Test unknown provider types and missing settings."""
        with pytest.raises(ConfigurationError):
            create_curation_providers([{"type": "Unknown"}])
        with pytest.raises(ConfigurationError):
            create_curation_providers([{"type": "File", "config": {}}])

    def test_uncurated_packages_are_unchanged(self):
        """Test that packages without curations pass through."""
        package = Package(go_id(MODULE_C))
        provider = SimplePackageCurationProvider([PackageCuration(go_id(MODULE_B))])

        assert apply_curations([package], [provider]) == [package]


class TestAnalyzer:
    """Test complete analyzer runs over a directory tree."""

    def _project_result(self, name, packages=()):
        return ProjectAnalyzerResult(
            project=Project(Identifier("GoMod", "", name, ""), f"{name}/go.mod"),
            packages=frozenset(packages),
        )

    def _write_go_mods(self, temp_dir, *dirs):
        for directory in dirs:
            (temp_dir / directory).mkdir(parents=True, exist_ok=True)
            (temp_dir / directory / "go.mod").write_text("module x\n", encoding="utf-8")

    def test_registered_package_managers(self):
        """Test that both backends are available by name."""
        assert {"GoMod", "Poetry"} <= set(PACKAGE_MANAGERS)
        with pytest.raises(ValueError):
            get_package_manager_factory("Maven")

    def test_failure_is_isolated(self, temp_dir, config):
        """Test that one failing project does not abort the others."""
        self._write_go_mods(temp_dir, "one", "two")

        def fake_resolve(manager, definition_file):
            if definition_file.parent.name == "two":
                raise ResolutionError("Expected exactly one main module, found 0.")
            return [self._project_result("one")]

        with patch.object(GoMod, "resolve_dependencies", autospec=True, side_effect=fake_resolve):
            result = analyze(temp_dir, config, ["GoMod"], check_versions=False)

        assert len(result.results) == 2
        assert [r.failed for r in result.results] == [False, True]
        assert result.results[1].project.definition_file_path == "two/go.mod"
        assert result.has_issues

    def test_vendored_go_mod_is_skipped(self, temp_dir, config):
        """Test that only the project go.mod is resolved."""
        self._write_go_mods(temp_dir, ".", "vendor/example.com/b")
        resolved = []

        def fake_resolve(manager, definition_file):
            resolved.append(definition_file)
            return [self._project_result("root")]

        with patch.object(GoMod, "resolve_dependencies", autospec=True, side_effect=fake_resolve):
            analyze(temp_dir, config, ["GoMod"], check_versions=False)

        assert [path.parent for path in resolved] == [temp_dir.resolve()]

    def test_tool_version_failure(self, temp_dir, config):
        """Test that an unusable tool fails every project of that backend."""
        self._write_go_mods(temp_dir, "one", "two")

        with patch.object(GoMod, "check_version", side_effect=ConfigurationError("go too old")):
            result = analyze(temp_dir, config, ["GoMod"])

        assert len(result.results) == 2
        assert all(r.failed for r in result.results)
        assert result.results[0].issues == ["ConfigurationError: go too old"]
        assert get_error_handler().get_error_stats() == {"EXTERNAL_TOOL_ERROR": 1}

    def test_invalid_curations_are_reported(self, temp_dir, config):
        """Test that a broken curation provider reaches the curation callbacks."""
        self._write_go_mods(temp_dir, ".")
        config.curations.providers = [
            {"type": "Simple", "config": {"curations": [{"id": "foo"}]}}
        ]
        reported = []
        get_error_handler().register_callback(reported.append, ErrorCategory.CURATION)

        with pytest.raises(ConfigurationError):
            analyze(temp_dir, config, ["GoMod"], check_versions=False)

        assert len(reported) == 1
        assert reported[0].category == ErrorCategory.CURATION
        assert isinstance(reported[0].exception, ConfigurationError)
        assert get_error_handler().get_error_stats() == {"CURATION_ERROR": 1}

    def test_curations_are_applied(self, temp_dir, config):
        """Test that configured curations change the resolved packages."""
        self._write_go_mods(temp_dir, ".")
        config.curations.providers = [
            {
                "type": "Simple",
                "config": {
                    "curations": [
                        {"id": f"Go::{MODULE_B}:", "curations": {"homepage_url": "https://b.example.com"}}
                    ]
                },
            }
        ]

        with patch.object(
            GoMod,
            "resolve_dependencies",
            autospec=True,
            return_value=[self._project_result("root", [Package(go_id(MODULE_B))])],
        ):
            result = analyze(temp_dir, config, ["GoMod"], check_versions=False)

        assert result.packages[0].homepage_url == "https://b.example.com"

    def test_empty_directory(self, temp_dir, config):
        """Test that a tree without definition files gives no results."""
        result = analyze(temp_dir, config)

        assert result.results == []
        assert not result.has_issues
        assert json.loads(json.dumps(result.to_dict()))["results"] == []
