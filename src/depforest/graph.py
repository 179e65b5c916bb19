"""
Directed module graph used to resolve dependency trees.

Nodes are kept in an arena (a list plus an identifier -> index map) and edges
as adjacency sets of indices, so cycles never create reference loops between
objects and all algorithms work on plain integers.
"""

from typing import Dict, FrozenSet, Iterable, Iterator, List, Set, Tuple

from .dependency import Identifier, PackageLinkage, PackageReference


class Graph:
    """A mutable directed graph over package identifiers."""

    def __init__(self) -> None:
        self._nodes: List[Identifier] = []
        self._index: Dict[Identifier, int] = {}
        self._edges: Dict[int, Set[int]] = {}

    def add_node(self, node: Identifier) -> int:
        """Add a node if not present and return its index."""
        index = self._index.get(node)
        if index is None:
            index = len(self._nodes)
            self._nodes.append(node)
            self._index[node] = index
            self._edges[index] = set()
        return index

    def add_edge(self, parent: Identifier, child: Identifier) -> None:
        """Add a directed edge, adding both endpoints as nodes."""
        parent_index = self.add_node(parent)
        child_index = self.add_node(child)
        self._edges[parent_index].add(child_index)

    @property
    def nodes(self) -> List[Identifier]:
        """All nodes in insertion order."""
        return list(self._nodes)

    @property
    def size(self) -> int:
        return len(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return node in self._index

    def edges(self) -> Iterator[Tuple[Identifier, Identifier]]:
        for parent_index, children in self._edges.items():
            for child_index in children:
                yield self._nodes[parent_index], self._nodes[child_index]

    @property
    def edge_count(self) -> int:
        return sum(len(children) for children in self._edges.values())

    def has_edge(self, parent: Identifier, child: Identifier) -> bool:
        if parent not in self._index or child not in self._index:
            return False
        return self._index[child] in self._edges[self._index[parent]]

    def dependencies(self, node: Identifier) -> FrozenSet[Identifier]:
        """Return the direct successors of the given node."""
        index = self._index.get(node)
        if index is None:
            return frozenset()
        return frozenset(self._nodes[child] for child in self._edges[index])

    def subgraph(self, nodes: Iterable[Identifier]) -> "Graph":
        """
        Return the subgraph induced by the given nodes.

        Nodes not part of this graph are ignored; only edges whose endpoints
        both survive are kept.
        """
        keep = {node for node in nodes if node in self._index}
        result = Graph()
        for node in self._nodes:
            if node in keep:
                result.add_node(node)
        for parent, child in self.edges():
            if parent in keep and child in keep:
                result.add_edge(parent, child)
        return result

    def _sorted_successors(self, index: int) -> List[int]:
        return sorted(self._edges[index], key=lambda child: self._nodes[child])

    def _back_edges(self) -> Set[Tuple[int, int]]:
        # Iterative DFS; module graphs can be deeper than the recursion limit.
        unvisited, in_progress, done = 0, 1, 2
        state = [unvisited] * len(self._nodes)
        back_edges: Set[Tuple[int, int]] = set()

        for start in sorted(range(len(self._nodes)), key=lambda i: self._nodes[i]):
            if state[start] != unvisited:
                continue

            state[start] = in_progress
            stack = [(start, iter(self._sorted_successors(start)))]
            while stack:
                index, successors = stack[-1]
                child = next(successors, None)
                if child is None:
                    state[index] = done
                    stack.pop()
                elif state[child] == in_progress:
                    back_edges.add((index, child))
                elif state[child] == unvisited:
                    state[child] = in_progress
                    stack.append((child, iter(self._sorted_successors(child))))

        return back_edges

    def has_cycle(self) -> bool:
        return bool(self._back_edges())

    def break_cycles(self) -> "Graph":
        """
        Return an acyclic copy of this graph with the same node set.

        Back edges found by a depth-first search are dropped. Nodes and
        successors are visited in sorted order, so the removed edges only
        depend on the graph contents.
        """
        back_edges = self._back_edges()
        result = Graph()
        for node in self._nodes:
            result.add_node(node)
        for parent_index, children in self._edges.items():
            for child_index in children:
                if (parent_index, child_index) not in back_edges:
                    result.add_edge(self._nodes[parent_index], self._nodes[child_index])
        return result

    def post_order(self, starts: Iterable[Identifier]) -> List[Identifier]:
        """
        Return the nodes reachable from starts, every node after all of its successors.

        Raises:
            ValueError: If a cycle is reachable from starts
        """
        unvisited, in_progress, done = 0, 1, 2
        state = [unvisited] * len(self._nodes)
        order: List[Identifier] = []

        for start in sorted(self._index[node] for node in starts if node in self._index):
            if state[start] != unvisited:
                continue

            state[start] = in_progress
            stack = [(start, iter(self._sorted_successors(start)))]
            while stack:
                index, successors = stack[-1]
                child = next(successors, None)
                if child is None:
                    state[index] = done
                    order.append(self._nodes[index])
                    stack.pop()
                elif state[child] == in_progress:
                    raise ValueError(
                        f"Dependency cycle through {self._nodes[child]}, break cycles first"
                    )
                elif state[child] == unvisited:
                    state[child] = in_progress
                    stack.append((child, iter(self._sorted_successors(child))))

        return order


def to_package_reference_forest(
    graph: Graph,
    root: Identifier,
    linkage: PackageLinkage = PackageLinkage.PROJECT_STATIC,
) -> FrozenSet[PackageReference]:
    """
    Convert the graph into the dependency trees of the direct dependencies of root.

    Every reference expands exactly its own successors. References are built
    bottom-up, so a shared subtree is created once and deep chains need no
    recursion. The graph must be acyclic, so call Graph.break_cycles() first.
    """
    direct_dependencies = graph.dependencies(root)
    cache: Dict[Identifier, PackageReference] = {}
    for node in graph.post_order(direct_dependencies):
        cache[node] = PackageReference(
            id=node,
            linkage=linkage,
            dependencies=frozenset(cache[child] for child in graph.dependencies(node)),
        )

    return frozenset(cache[child] for child in direct_dependencies)
