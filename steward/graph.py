"""A small directed graph with deterministic topological traversal."""

from __future__ import annotations

import heapq
from typing import Dict, Generic, Hashable, Iterable, Iterator, List, TypeVar

V = TypeVar("V", bound=Hashable)


class DirectedGraph(Generic[V]):
    """Vertices and edges kept in insertion order.

    An edge ``a -> b`` means ``b`` depends on ``a``. Duplicate edges and edges
    touching unknown vertices are ignored.
    """

    def __init__(self) -> None:
        self._index: Dict[V, int] = {}
        self._vertices: List[V] = []
        self._outgoing: Dict[V, List[V]] = {}
        self._incoming: Dict[V, List[V]] = {}

    def add_vertex(self, vertex: V) -> None:
        if vertex in self._index:
            return
        self._index[vertex] = len(self._vertices)
        self._vertices.append(vertex)
        self._outgoing[vertex] = []
        self._incoming[vertex] = []

    def add_edge(self, source: V, target: V) -> bool:
        if source not in self._index or target not in self._index:
            return False
        if target in self._outgoing[source]:
            return False
        self._outgoing[source].append(target)
        self._incoming[target].append(source)
        return True

    @property
    def vertices(self) -> List[V]:
        return list(self._vertices)

    def dependencies(self, vertex: V) -> List[V]:
        """Vertices with an edge into ``vertex``, in insertion order."""
        return list(self._incoming[vertex])

    def dependents(self, vertex: V) -> List[V]:
        return list(self._outgoing[vertex])

    def topological_order(self) -> Iterator[V]:
        """Yield vertices dependencies-first.

        Among vertices that are ready at the same time the one added first is
        yielded first. Vertices on a cycle, and everything after them, are
        never yielded.
        """
        in_degree = {v: len(self._incoming[v]) for v in self._vertices}
        ready = [self._index[v] for v in self._vertices if in_degree[v] == 0]
        heapq.heapify(ready)

        while ready:
            vertex = self._vertices[heapq.heappop(ready)]
            yield vertex
            for dependent in self._outgoing[vertex]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, self._index[dependent])

    @classmethod
    def from_dependencies(
        cls, items: Iterable[tuple[V, Iterable[V]]]
    ) -> "DirectedGraph[V]":
        """Build a graph from ``(vertex, depends_on)`` pairs."""
        items = [(vertex, list(deps)) for vertex, deps in items]
        graph: DirectedGraph[V] = cls()
        for vertex, _ in items:
            graph.add_vertex(vertex)
        for vertex, deps in items:
            for dep in deps:
                graph.add_edge(dep, vertex)
        return graph
