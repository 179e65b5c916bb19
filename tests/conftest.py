"""
Shared fixtures for the depforest tests.
"""

import json
import textwrap
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

import pytest

from depforest.cli_config import ComprehensiveConfig, reset_config
from depforest.command_line_tool import ProcessResult
from depforest.error_handling import setup_error_handling

MAIN_MODULE = "example.com/a"
MODULE_B = "example.com/b"
MODULE_C = "example.com/c"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Isolate tests from config files, environment overrides and error callbacks."""
    for key in (
        "DEPFOREST_WHY_CHUNK_SIZE",
        "DEPFOREST_GO_PROXY",
        "DEPFOREST_PYTHON_VERSION",
        "DEPFOREST_OPERATING_SYSTEM",
        "DEPFOREST_PACKAGE_MANAGERS",
        "DEPFOREST_LOG_LEVEL",
        "GOPROXY",
    ):
        monkeypatch.delenv(key, raising=False)
    reset_config()
    setup_error_handling()
    yield
    reset_config()


@pytest.fixture
def temp_dir(tmp_path):
    """Temporary directory for file based tests."""
    return tmp_path


@pytest.fixture
def config():
    """Default configuration that never reads config files."""
    return ComprehensiveConfig()


def module_stream(*records: Dict) -> str:
    """Render records the way 'go list -json' prints them."""
    return "\n".join(json.dumps(record, indent="\t") for record in records) + "\n"


def why_output(used: Iterable[str], unused: Iterable[str] = ()) -> str:
    """Render 'go mod why -m' output for used and unused modules."""
    sections = []
    for name in used:
        sections.append(f"# {name}\n{MAIN_MODULE}\n{name}/pkg\n")
    for name in unused:
        sections.append(f"# {name}\n(main module does not need module {name})\n")
    return "\n".join(sections)


@pytest.fixture
def simple_module_list():
    """A main module A, a direct dependency B and an indirect dependency C."""
    return module_stream(
        {"Path": MAIN_MODULE, "Main": True, "GoMod": "/src/a/go.mod", "GoVersion": "1.21"},
        {"Path": MODULE_B, "Version": "v1.0.0"},
        {"Path": MODULE_C, "Version": "v1.0.0", "Indirect": True},
    )


@pytest.fixture
def simple_module_graph():
    return textwrap.dedent(
        f"""\
        {MAIN_MODULE} {MODULE_B}@v1.0.0
        {MAIN_MODULE} {MODULE_C}@v1.0.0
        {MAIN_MODULE} go@1.21
        {MODULE_B}@v1.0.0 {MODULE_C}@v1.0.0
        {MODULE_B}@v1.0.0 toolchain@go1.21.1
        """
    )


@pytest.fixture
def go_project(temp_dir):
    """A directory holding a go.mod file."""
    go_mod = temp_dir / "go.mod"
    go_mod.write_text(f"module {MAIN_MODULE}\n\ngo 1.21\n", encoding="utf-8")
    return go_mod


class FakeGo:
    """Answers the 'go' subcommands used during resolution from canned output."""

    def __init__(self, module_list: str, module_graph: str, deps: Sequence[str], unused: Sequence[str] = ()):
        self.module_list = module_list
        self.module_graph = module_graph
        self.deps = list(deps)
        self.unused = set(unused)
        self.calls: List[tuple] = []
        self.vendor_seen: List[bool] = []

    def __call__(self, *args: str, working_dir: Path) -> ProcessResult:
        self.calls.append(args)
        self.vendor_seen.append((Path(working_dir) / "vendor").exists())

        if args[:2] == ("list", "-m"):
            stdout = self.module_list
        elif args[:2] == ("mod", "graph"):
            stdout = self.module_graph
        elif args[:2] == ("mod", "why"):
            names = [arg for arg in args[2:] if not arg.startswith("-")]
            stdout = why_output(
                [n for n in names if n not in self.unused],
                [n for n in names if n in self.unused],
            )
        elif args[:2] == ("list", "-deps"):
            stdout = module_stream(
                {"ImportPath": "fmt", "Standard": True},
                *({"ImportPath": f"{name}/pkg", "Module": {"Path": name}} for name in self.deps),
            )
        else:
            raise AssertionError(f"Unexpected go invocation: {args}")

        return ProcessResult(command=("go",) + tuple(args), exit_code=0, stdout=stdout, stderr="")
