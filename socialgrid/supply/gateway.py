"""
Property-graph gateway for the supply chain.

Vertices and edges carry free-form JSON properties. The graph was populated
under two conventions (numbers as numbers, numbers as strings), so every
property read goes through safe_read.

When no graph source is available every operation logs a warning and
returns an empty result instead of failing.
"""

import json
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, TypeVar
from uuid import uuid4

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db.graph import GraphSource
from ..errors import GraphUnavailable, StorageFailure, ValidationFailure
from ..logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 50

_TRUE_STRINGS = {"true", "1", "yes", "y", "t"}
_FALSE_STRINGS = {"false", "0", "no", "n", "f"}


def safe_read(properties: Optional[Dict[str, Any]], name: str, default: T) -> T:
    """
    Read a property, coercing it to the type of the default.

    Strings are parsed, numbers are cast, and anything missing or
    unparseable yields the default. Never raises.
    """
    if not properties:
        return default
    value = properties.get(name)
    if value is None:
        return default
    # Multi-valued properties arrive as single-element lists
    if isinstance(value, list):
        if len(value) != 1:
            return default
        value = value[0]

    try:
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            if isinstance(value, (int, float)):
                return bool(value)
            lowered = str(value).strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            return default
        if isinstance(default, int):
            if isinstance(value, bool):
                return int(value)
            return int(float(value))
        if isinstance(default, float):
            if isinstance(value, bool):
                return default
            return float(value)
        if isinstance(default, str):
            return str(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return value


def load_properties(raw: Any) -> Dict[str, Any]:
    """Decode stored properties, tolerating malformed payloads."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return decoded if isinstance(decoded, dict) else {}


@dataclass
class Vertex:
    """A labeled graph vertex."""
    id: str
    label: str
    key: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GraphEdge:
    """A labeled, directed graph edge."""
    id: str
    label: str
    src_id: str
    dst_id: str
    properties: Dict[str, Any] = field(default_factory=dict)


_VERTEX_COLUMNS = "id, label, vertex_key, properties"
_EDGE_COLUMNS = "id, label, src_id, dst_id, properties"


def _vertex(row) -> Vertex:
    return Vertex(id=row[0], label=row[1], key=row[2], properties=load_properties(row[3]))


def _edge(row) -> GraphEdge:
    return GraphEdge(id=row[0], label=row[1], src_id=row[2], dst_id=row[3], properties=load_properties(row[4]))


def row_lock_clause(session: Session) -> str:
    """`FOR UPDATE` where the dialect has row locks; SQLite serializes writers instead."""
    return "" if session.get_bind().dialect.name == "sqlite" else " FOR UPDATE"


class GraphGateway:
    """
    Typed vertex/edge access over the graph source.

    A gateway opened with batch() shares one session (and transaction)
    across calls; otherwise each call runs in its own transaction.
    """

    def __init__(
        self,
        source: Optional[GraphSource],
        session: Optional[Session] = None,
        default_limit: int = DEFAULT_LIMIT,
    ):
        self.source = source
        self._session = session
        self.default_limit = default_limit

    @property
    def available(self) -> bool:
        return self.source is not None

    def warn_unavailable(self, operation: str):
        logger.warning("graph_unavailable", operation=operation)

    @contextmanager
    def _scope(self, operation: str) -> Generator[Session, None, None]:
        try:
            if self._session is not None:
                yield self._session
            else:
                with self.source.session_scope() as session:
                    yield session
        except IntegrityError as e:
            logger.warning("graph_constraint_violation", operation=operation, error=str(e))
            raise ValidationFailure(f"Graph constraint violated during {operation}") from e
        except SQLAlchemyError as e:
            logger.error("graph_storage_failure", operation=operation, error=str(e))
            raise StorageFailure(operation, e) from e

    @contextmanager
    def batch(self) -> Generator["GraphGateway", None, None]:
        """Run several operations in one transaction."""
        if not self.available:
            raise GraphUnavailable("graph store is not connected")
        if self._session is not None:
            yield self
            return
        with self._scope("batch") as session:
            yield GraphGateway(self.source, session=session, default_limit=self.default_limit)

    def _limit(self, limit: Optional[int]) -> int:
        return self.default_limit if limit is None else limit

    # ============================================================
    # VERTEX OPERATIONS
    # ============================================================

    def add_vertex(self, label: str, key: str, properties: Dict[str, Any]) -> Optional[Vertex]:
        """Create a vertex; `key` is the label-unique business id."""
        if not self.available:
            self.warn_unavailable("add_vertex")
            return None

        vertex = Vertex(id=str(uuid4()), label=label, key=key, properties=dict(properties))
        statement = text("""
            INSERT INTO graph_vertex (id, label, vertex_key, properties, created_at)
            VALUES (:id, :label, :vertex_key, :properties, :created_at)
        """).bindparams(bindparam("created_at", type_=DateTime(timezone=True)))

        with self._scope("add_vertex") as session:
            session.execute(
                statement,
                {
                    "id": vertex.id,
                    "label": label,
                    "vertex_key": key,
                    "properties": json.dumps(vertex.properties),
                    "created_at": datetime.now(timezone.utc),
                },
            )
        return vertex

    def find_vertex(self, label: str, key: str, for_update: bool = False) -> Optional[Vertex]:
        """
        Look up a vertex by its business key.

        With `for_update` inside batch(), the row stays locked until the
        batch commits.
        """
        if not self.available:
            self.warn_unavailable("find_vertex")
            return None
        with self._scope("find_vertex") as session:
            lock = row_lock_clause(session) if for_update else ""
            row = session.execute(
                text(f"""
                    SELECT {_VERTEX_COLUMNS} FROM graph_vertex
                    WHERE label = :label AND vertex_key = :vertex_key
                    ORDER BY created_at{lock}
                """),
                {"label": label, "vertex_key": key},
            ).fetchone()
        return _vertex(row) if row else None

    def get_vertex(self, vertex_id: str) -> Optional[Vertex]:
        if not self.available:
            self.warn_unavailable("get_vertex")
            return None
        with self._scope("get_vertex") as session:
            row = session.execute(
                text(f"SELECT {_VERTEX_COLUMNS} FROM graph_vertex WHERE id = :id"),
                {"id": vertex_id},
            ).fetchone()
        return _vertex(row) if row else None

    def get_vertices(self, vertex_ids: Iterable[str]) -> Dict[str, Vertex]:
        """Fetch several vertices by id."""
        ids = list(dict.fromkeys(vertex_ids))
        if not self.available:
            self.warn_unavailable("get_vertices")
            return {}
        if not ids:
            return {}
        statement = text(
            f"SELECT {_VERTEX_COLUMNS} FROM graph_vertex WHERE id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))
        with self._scope("get_vertices") as session:
            rows = session.execute(statement, {"ids": ids}).fetchall()
        return {row[0]: _vertex(row) for row in rows}

    def list_vertices(
        self,
        label: str,
        limit: Optional[int] = None,
        where: Optional[Callable[[Vertex], bool]] = None,
    ) -> List[Vertex]:
        """Vertices with a label, capped at `limit`."""
        if not self.available:
            self.warn_unavailable("list_vertices")
            return []
        cap = self._limit(limit)
        vertices: List[Vertex] = []
        with self._scope("list_vertices") as session:
            result = session.execute(
                text(f"""
                    SELECT {_VERTEX_COLUMNS} FROM graph_vertex
                    WHERE label = :label
                    ORDER BY created_at, id
                """),
                {"label": label},
            )
            for row in result:
                if len(vertices) >= cap:
                    break
                vertex = _vertex(row)
                if where is None or where(vertex):
                    vertices.append(vertex)
        return vertices

    def update_vertex_properties(self, vertex_id: str, updates: Dict[str, Any]) -> Optional[Vertex]:
        """Merge property updates into a vertex."""
        if not self.available:
            self.warn_unavailable("update_vertex_properties")
            return None
        with self._scope("update_vertex_properties") as session:
            row = session.execute(
                text(f"SELECT {_VERTEX_COLUMNS} FROM graph_vertex WHERE id = :id{row_lock_clause(session)}"),
                {"id": vertex_id},
            ).fetchone()
            if row is None:
                return None
            vertex = _vertex(row)
            vertex.properties.update(updates)
            session.execute(
                text("UPDATE graph_vertex SET properties = :properties WHERE id = :id"),
                {"id": vertex_id, "properties": json.dumps(vertex.properties)},
            )
        return vertex

    def drop_vertices(self, label: str) -> int:
        """Delete all vertices with a label, and their edges."""
        if not self.available:
            self.warn_unavailable("drop_vertices")
            return 0
        with self._scope("drop_vertices") as session:
            session.execute(
                text("""
                    DELETE FROM graph_edge
                    WHERE src_id IN (SELECT id FROM graph_vertex WHERE label = :label)
                       OR dst_id IN (SELECT id FROM graph_vertex WHERE label = :label)
                """),
                {"label": label},
            )
            result = session.execute(
                text("DELETE FROM graph_vertex WHERE label = :label"),
                {"label": label},
            )
        return result.rowcount or 0

    # ============================================================
    # EDGE OPERATIONS
    # ============================================================

    def add_edge(self, label: str, src_id: str, dst_id: str, properties: Dict[str, Any]) -> Optional[GraphEdge]:
        if not self.available:
            self.warn_unavailable("add_edge")
            return None

        edge = GraphEdge(id=str(uuid4()), label=label, src_id=src_id, dst_id=dst_id, properties=dict(properties))
        statement = text("""
            INSERT INTO graph_edge (id, label, src_id, dst_id, properties, created_at)
            VALUES (:id, :label, :src_id, :dst_id, :properties, :created_at)
        """).bindparams(bindparam("created_at", type_=DateTime(timezone=True)))

        with self._scope("add_edge") as session:
            session.execute(
                statement,
                {
                    "id": edge.id,
                    "label": label,
                    "src_id": src_id,
                    "dst_id": dst_id,
                    "properties": json.dumps(edge.properties),
                    "created_at": datetime.now(timezone.utc),
                },
            )
        return edge

    def find_edges(
        self,
        label: str,
        src_id: Optional[str] = None,
        dst_id: Optional[str] = None,
        limit: Optional[int] = None,
        where: Optional[Callable[[GraphEdge], bool]] = None,
    ) -> List[GraphEdge]:
        """
        Edges with a label, optionally anchored at either end.

        `where` filters in Python (after coercion-tolerant reads); the cap
        applies to the filtered result.
        """
        if not self.available:
            self.warn_unavailable("find_edges")
            return []

        clauses = ["label = :label"]
        params: Dict[str, Any] = {"label": label}
        if src_id is not None:
            clauses.append("src_id = :src_id")
            params["src_id"] = src_id
        if dst_id is not None:
            clauses.append("dst_id = :dst_id")
            params["dst_id"] = dst_id

        cap = self._limit(limit)
        edges: List[GraphEdge] = []
        with self._scope("find_edges") as session:
            result = session.execute(
                text(f"""
                    SELECT {_EDGE_COLUMNS} FROM graph_edge
                    WHERE {' AND '.join(clauses)}
                    ORDER BY created_at, id
                """),
                params,
            )
            for row in result:
                if len(edges) >= cap:
                    break
                edge = _edge(row)
                if where is None or where(edge):
                    edges.append(edge)
        return edges

    def out_edges(self, vertex_id: str, label: str, limit: Optional[int] = None,
                  where: Optional[Callable[[GraphEdge], bool]] = None) -> List[GraphEdge]:
        return self.find_edges(label, src_id=vertex_id, limit=limit, where=where)

    def in_edges(self, vertex_id: str, label: str, limit: Optional[int] = None,
                 where: Optional[Callable[[GraphEdge], bool]] = None) -> List[GraphEdge]:
        return self.find_edges(label, dst_id=vertex_id, limit=limit, where=where)

    def update_edge_properties(self, edge_id: str, updates: Dict[str, Any]) -> Optional[GraphEdge]:
        if not self.available:
            self.warn_unavailable("update_edge_properties")
            return None
        with self._scope("update_edge_properties") as session:
            row = session.execute(
                text(f"SELECT {_EDGE_COLUMNS} FROM graph_edge WHERE id = :id{row_lock_clause(session)}"),
                {"id": edge_id},
            ).fetchone()
            if row is None:
                return None
            edge = _edge(row)
            edge.properties.update(updates)
            session.execute(
                text("UPDATE graph_edge SET properties = :properties WHERE id = :id"),
                {"id": edge_id, "properties": json.dumps(edge.properties)},
            )
        return edge

    def drop_edges(self, label: str) -> int:
        if not self.available:
            self.warn_unavailable("drop_edges")
            return 0
        with self._scope("drop_edges") as session:
            result = session.execute(
                text("DELETE FROM graph_edge WHERE label = :label"),
                {"label": label},
            )
        return result.rowcount or 0
