"""
Lowest-risk path search over supply routes.

Greedy depth-first search: at every hop the outgoing active routes are
tried in ascending riskFactor order, vertices are never repeated, and the
first path that reaches the target wins. This prefers low-risk hops but is
not a global shortest-path search.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .gateway import GraphEdge, Vertex, safe_read

# (route edge, vertex it leads to)
Hop = Tuple[GraphEdge, Vertex]

DEFAULT_MAX_HOPS = 50
DEFAULT_MAX_EXPANSIONS = 10_000


@dataclass
class PathResult:
    """Alternating vertices and edges of a found path."""
    vertices: List[Vertex]
    edges: List[GraphEdge]
    expansions: int = 0

    def steps(self) -> List[Dict[str, Any]]:
        """Format as depot / route / depot / ... steps."""
        result: List[Dict[str, Any]] = []
        for index, vertex in enumerate(self.vertices):
            result.append({
                "type": "depot",
                "id": safe_read(vertex.properties, "depotId", vertex.key),
                "name": safe_read(vertex.properties, "name", ""),
            })
            if index < len(self.edges):
                edge = self.edges[index]
                result.append({
                    "type": "route",
                    "distance": safe_read(edge.properties, "distance", 0.0),
                    "riskFactor": safe_read(edge.properties, "riskFactor", 0.0),
                })
        return result


def greedy_lowest_risk_path(
    start: Vertex,
    target_id: str,
    expand: Callable[[Vertex], Sequence[Hop]],
    max_hops: int = DEFAULT_MAX_HOPS,
    max_expansions: int = DEFAULT_MAX_EXPANSIONS,
) -> Optional[PathResult]:
    """
    Find the first simple path from `start` to the vertex `target_id`.

    Args:
        start: Source vertex
        target_id: Id of the destination vertex
        expand: Returns the hops out of a vertex, already ordered by preference
        max_hops: Maximum path length in edges
        max_expansions: Maximum number of vertices expanded before giving up

    Returns:
        PathResult, or None if no path exists within the bounds
    """
    if start.id == target_id:
        return None

    vertices: List[Vertex] = [start]
    edges: List[GraphEdge] = []
    on_path = {start.id}
    frontier: List[Iterator[Hop]] = [iter(expand(start))]
    expansions = 1

    while frontier:
        hop = next(frontier[-1], None)
        if hop is None:
            # Exhausted this vertex; backtrack
            frontier.pop()
            on_path.discard(vertices.pop().id)
            if edges:
                edges.pop()
            continue

        edge, vertex = hop
        if vertex.id in on_path:
            continue

        vertices.append(vertex)
        edges.append(edge)
        on_path.add(vertex.id)

        if vertex.id == target_id:
            return PathResult(vertices=vertices, edges=edges, expansions=expansions)

        if len(edges) >= max_hops or expansions >= max_expansions:
            on_path.discard(vertices.pop().id)
            edges.pop()
            continue

        frontier.append(iter(expand(vertex)))
        expansions += 1

    return None
