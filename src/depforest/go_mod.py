"""
The Go modules package manager, see https://go.dev/ref/mod.

go.sum is not a lockfile, Go modules already allow reproducible builds
without it, so there is no handling of dynamic versions.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from .cli_config import DEFAULT_GO_PROXY, ComprehensiveConfig
from .command_line_tool import CommandLineTool, ProcessResult
from .dependency import Identifier, Scope
from .error_handling import log_parsing_error
from .graph import Graph, to_package_reference_forest
from .model import (
    EMPTY_REMOTE_ARTIFACT,
    EMPTY_VCS_INFO,
    HASH_NONE,
    Package,
    Project,
    ProjectAnalyzerResult,
    RemoteArtifact,
    VcsInfo,
    VcsType,
)
from .module_graph import (
    build_module_graph,
    filter_nodes_by_module_names,
    prune_to_vendor_modules,
)
from .module_registry import (
    ModuleInfo,
    get_main_module_id,
    parse_dep_module_names,
    parse_module_infos,
    replaced_modules,
)
from .package_manager import PackageManager, PackageManagerFactory, register_package_manager
from .stash import remove_tree, stash_directories

GO_MOD_MANAGER_NAME = "GoMod"

# GOPROXY values that do not name a proxy.
_NON_PROXY_VALUES = ("direct", "off")


def get_go_proxy(
    environ: Optional[Mapping[str, str]] = None, default_proxy: str = ""
) -> str:
    """
    Return the first proxy URL from GOPROXY, or the default proxy.

    GOPROXY may hold a comma separated list of fallbacks and the special
    values 'direct' and 'off'; GOPRIVATE is not taken into account.
    """
    environ = os.environ if environ is None else environ
    proxies = [
        proxy.strip()
        for proxy in environ.get("GOPROXY", "").split(",")
        if proxy.strip() and proxy.strip() not in _NON_PROXY_VALUES
    ]
    first_proxy = proxies[0] if proxies else ""
    return (first_proxy or default_proxy or DEFAULT_GO_PROXY).rstrip("/")


def to_source_artifact(module_info: ModuleInfo, go_proxy: str) -> RemoteArtifact:
    return RemoteArtifact(
        url=f"{go_proxy}/{module_info.path}/@v/{module_info.version}.zip",
        hash=HASH_NONE,
    )


def to_vcs_info(module_info: ModuleInfo) -> Optional[VcsInfo]:
    """
    Read the VCS origin from the '.info' file the Go tools cache next to go.mod.

    Only Git origins are supported. A missing or broken info file means no
    VCS information, not an error.
    """
    if not module_info.go_mod:
        return None

    info_file = Path(module_info.go_mod).with_name(f"{module_info.version}.info")
    try:
        with open(info_file, encoding="utf-8") as f:
            origin = json.load(f)["Origin"]
    except FileNotFoundError:
        return None
    except (OSError, ValueError, KeyError, TypeError) as e:
        log_parsing_error(
            f"Cannot read module info file for '{module_info.path}': {e}",
            "go_mod",
            "to_vcs_info",
            file_path=str(info_file),
            exception=e,
        )
        return None

    if not isinstance(origin, dict) or VcsType.for_name(origin.get("VCS") or "") != VcsType.GIT:
        return None
    if not origin.get("URL") or not origin.get("Hash"):
        log_parsing_error(
            f"Incomplete Git origin for '{module_info.path}'",
            "go_mod",
            "to_vcs_info",
            file_path=str(info_file),
        )
        return None

    return VcsInfo(
        type=VcsType.GIT,
        url=origin["URL"],
        revision=origin["Hash"],
        path=origin.get("Subdir") or "",
    )


class GoMod(PackageManager, CommandLineTool):
    """Resolves go.mod files into 'main' and 'vendor' dependency scopes."""

    def __init__(
        self,
        manager_name: str,
        analysis_root: Path,
        config: Optional[ComprehensiveConfig] = None,
    ):
        super().__init__(manager_name, analysis_root, config)
        self._go_path: Optional[Path] = None
        self._environment: Optional[Dict[str, str]] = None

    def command(self, working_dir: Optional[Path] = None) -> str:
        return "go"

    def version_arguments(self) -> List[str]:
        return ["version"]

    def transform_version(self, output: str) -> str:
        # "go version go1.21.1 linux/amd64" -> "1.21.1"
        version = output.strip()
        if version.startswith("go version go"):
            version = version[len("go version go"):]
        return version.split(" ", 1)[0]

    def version_requirement(self) -> Optional[str]:
        return self.config.go.min_version

    @property
    def go_path(self) -> Path:
        """Scratch GOPATH holding the module cache of this instance."""
        if self._go_path is None:
            self._go_path = Path(tempfile.mkdtemp(prefix="depforest-gopath-"))
        return self._go_path

    @property
    def environment(self) -> Dict[str, str]:
        if self._environment is None:
            self._environment = {
                "GOPATH": str(self.go_path),
                "GOPROXY": "direct",
                "GOWORK": "off",
            }
        return self._environment

    def cleanup(self) -> None:
        if self._go_path is not None:
            remove_tree(self._go_path)
            self._go_path = None
            self._environment = None

    def run_go(self, *args: str, working_dir: Path) -> ProcessResult:
        return self.run(*args, working_dir=working_dir, environment=self.environment)

    def map_definition_files(self, definition_files: List[Path]) -> List[Path]:
        """Drop go.mod files of vendored modules."""
        mapped = []
        for definition_file in definition_files:
            try:
                relative_dir = definition_file.resolve().parent.relative_to(self.analysis_root)
            except ValueError:
                relative_dir = definition_file.parent
            if "vendor" not in relative_dir.parts:
                mapped.append(definition_file)
        return mapped

    def resolve_dependencies(self, definition_file: Path) -> List[ProjectAnalyzerResult]:
        project_dir = definition_file.parent

        with stash_directories(project_dir / "vendor"):
            registry = self.get_module_infos(project_dir)
            graph = self.get_module_graph(project_dir, registry)
            project_id = get_main_module_id(registry, self.manager_name)
            aliases = replaced_modules(registry)

            packages = frozenset(
                self.to_package(registry[node.name])
                for node in graph.nodes
                if node != project_id
            )

            main_module_names = self.get_transitive_main_module_dependencies(project_dir)
            main_scope_ids = filter_nodes_by_module_names(
                graph.nodes, main_module_names, aliases
            ) | {project_id}

            scopes = frozenset(
                [
                    Scope(
                        name="main",
                        dependencies=to_package_reference_forest(
                            graph.subgraph(main_scope_ids), project_id
                        ),
                    ),
                    Scope(
                        name="vendor",
                        dependencies=to_package_reference_forest(graph, project_id),
                    ),
                ]
            )

        relative_path = self.relative_path(definition_file)
        project = Project(
            id=Identifier(
                type=self.manager_name,
                namespace="",
                name=project_id.name,
                version="",
            ),
            definition_file_path=relative_path,
            scopes=scopes,
        )
        return [ProjectAnalyzerResult(project=project, packages=packages)]

    def get_module_infos(self, project_dir: Path) -> Dict[str, ModuleInfo]:
        """
        Return all modules of the dependency tree with resolved versions and the
        'replace' directives applied.
        """
        result = self.run_go("list", "-m", "-json", "-buildvcs=false", "all", working_dir=project_dir)
        return parse_module_infos(result.stdout)

    def get_module_graph(self, project_dir: Path, registry: Mapping[str, ModuleInfo]) -> Graph:
        """
        Return the acyclic module graph of 'go mod graph' without the modules
        that are not needed to build and test the main module.
        """
        edges = self.run_go("mod", "graph", working_dir=project_dir)
        graph = build_module_graph(edges.stdout, registry, self.manager_name)

        main_module_name = get_main_module_id(registry, self.manager_name).name

        def run_why(module_names: List[str]) -> str:
            # '-m' makes 'go mod why' work on module names like the graph does.
            return self.run_go("mod", "why", "-m", "-vendor", *module_names, working_dir=project_dir).stdout

        graph = prune_to_vendor_modules(
            graph,
            main_module_name,
            replaced_modules(registry),
            run_why,
            self.config.go.why_chunk_size,
        )
        return graph.break_cycles()

    def get_transitive_main_module_dependencies(self, project_dir: Path) -> Set[str]:
        """Return the module names of all packages the main module builds, without tests."""
        result = self.run_go(
            "list", "-deps", "-json=Module", "-buildvcs=false", "./...", working_dir=project_dir
        )
        return parse_dep_module_names(result.stdout)

    def to_package(self, module_info: ModuleInfo) -> Package:
        # Go modules carry no author or license metadata.
        vcs_info = to_vcs_info(module_info) or EMPTY_VCS_INFO
        source_artifact = (
            to_source_artifact(module_info, get_go_proxy(default_proxy=self.config.go.default_proxy))
            if vcs_info.is_empty
            else EMPTY_REMOTE_ARTIFACT
        )
        return Package(
            id=module_info.to_id(self.manager_name),
            source_artifact=source_artifact,
            vcs=vcs_info,
        )


class GoModFactory(PackageManagerFactory):
    type = GO_MOD_MANAGER_NAME
    globs_for_definition_files = ("go.mod",)

    def create(
        self, analysis_root: Path, config: Optional[ComprehensiveConfig] = None
    ) -> GoMod:
        return GoMod(self.type, analysis_root, config)


register_package_manager(GoModFactory())
