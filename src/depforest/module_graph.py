"""
Construction and pruning of the Go module graph.

The edges come from 'go mod graph', the pruning from 'go mod why -m -vendor',
see https://go.dev/ref/mod#go-mod-graph and https://go.dev/ref/mod#go-mod-why.
"""

from typing import Callable, Iterable, Iterator, List, Mapping, Sequence, Set, TypeVar

from .dependency import Identifier
from .error_handling import MalformedInputError
from .graph import Graph
from .module_registry import ModuleInfo, get_main_module, get_module_info
from .structured_logging import get_graph_logger, log_graph_pruned

# Pseudo-modules for the required go and toolchain versions, printed by
# 'go mod graph' since Go 1.21. There is no module info for them.
TOOLCHAIN_PSEUDO_MODULES = ("go@", "toolchain@")

# Separator indicating that data of a new package follows in 'go mod why' output.
PACKAGE_SEPARATOR = "# "

T = TypeVar("T")


def module_name(entry: str) -> str:
    """Strip the '@version' suffix from a 'go mod graph' column."""
    return entry.split("@", 1)[0]


def build_module_graph(
    edges_output: str,
    registry: Mapping[str, ModuleInfo],
    manager_name: str,
) -> Graph:
    """
    Build the module graph from the output of 'go mod graph'.

    Each non-blank line holds a 'parent child' pair of 'name@version' or 'name'
    columns. Edges from the main module to indirect dependencies are skipped,
    they only exist to complete the transitive closure in go.mod.
    """
    logger = get_graph_logger()

    def to_id(entry: str) -> Identifier:
        return get_module_info(registry, module_name(entry)).to_id(manager_name)

    main_module = get_main_module(registry)
    graph = Graph()
    graph.add_node(main_module.to_id(manager_name))

    for line in edges_output.splitlines():
        if not line.strip():
            continue

        columns = line.split()
        if len(columns) != 2:
            raise MalformedInputError(
                f"Expected exactly two columns in module graph line: '{line}'", line
            )

        parent_entry, child_entry = columns
        if child_entry.startswith(TOOLCHAIN_PSEUDO_MODULES):
            continue

        parent_info = get_module_info(registry, module_name(parent_entry))
        child_info = get_module_info(registry, module_name(child_entry))

        if parent_info.main and child_info.indirect:
            logger.debug(
                "indirect_edge_skipped", parent=parent_info.path, child=child_info.path
            )
            continue

        graph.add_edge(to_id(parent_entry), to_id(child_entry))

    return graph


def parse_why_output(output: str) -> Set[str]:
    """
    Return the names of the modules 'go mod why' reports as used.

    A line starting with '# ' names the module of the following section. Any
    non-blank line in a section that does not start with '(' is an import
    chain, i.e. evidence that the module is needed.
    """
    used_modules: Set[str] = set()
    current_module = None

    for line in output.splitlines():
        if line.startswith(PACKAGE_SEPARATOR):
            current_module = line[len(PACKAGE_SEPARATOR):]
        elif line.strip() and not line.startswith("(") and current_module is not None:
            used_modules.add(current_module)

    return used_modules


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def get_vendor_module_names(
    nodes: Sequence[Identifier],
    main_module_name: str,
    replaced_modules: Mapping[str, str],
    run_why: Callable[[List[str]], str],
    chunk_size: int,
) -> Set[str]:
    """Query 'why' evidence in batches and return the names of used modules."""
    vendor_module_names = {main_module_name}

    for ids in chunked(nodes, chunk_size):
        module_names = [replaced_modules.get(node.name, node.name) for node in ids]
        vendor_module_names |= parse_why_output(run_why(module_names))

    return vendor_module_names


def get_vendor_modules(
    graph: Graph,
    main_module_name: str,
    replaced_modules: Mapping[str, str],
    run_why: Callable[[List[str]], str],
    chunk_size: int = 32,
) -> Set[Identifier]:
    """
    Return the nodes of the graph required to build and test the main module.

    Test dependencies of dependencies are filtered out. The chunk size only
    bounds the length of a single command line.
    """
    vendor_module_names = get_vendor_module_names(
        graph.nodes, main_module_name, replaced_modules, run_why, chunk_size
    )
    return {
        node
        for node in graph.nodes
        if replaced_modules.get(node.name, node.name) in vendor_module_names
    }


def prune_to_vendor_modules(
    graph: Graph,
    main_module_name: str,
    replaced_modules: Mapping[str, str],
    run_why: Callable[[List[str]], str],
    chunk_size: int = 32,
) -> Graph:
    """Remove the modules not needed for vendoring from the graph."""
    vendor_modules = get_vendor_modules(
        graph, main_module_name, replaced_modules, run_why, chunk_size
    )
    if len(vendor_modules) < graph.size:
        log_graph_pruned(graph.size, len(vendor_modules), "non_vendor_modules")
        return graph.subgraph(vendor_modules)
    return graph


def filter_nodes_by_module_names(
    nodes: Iterable[Identifier],
    module_names: Set[str],
    replaced_modules: Mapping[str, str],
) -> Set[Identifier]:
    """Select the nodes whose (aliased) name is one of the given module names."""
    return {
        node
        for node in nodes
        if node.name in module_names
        or replaced_modules.get(node.name, node.name) in module_names
    }
