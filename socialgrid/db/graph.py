"""
Graph store engine and session management.

The supply-chain property graph is kept in two SQL tables (vertices and
edges with JSON properties). A single GraphSource wraps the engine; it is
created once at startup and disposed at shutdown. When the graph is disabled
or unreachable the source is None and graph operations short-circuit.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..logging import get_logger
from ..settings import settings

logger = get_logger(__name__)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS graph_vertex (
        id VARCHAR(36) PRIMARY KEY,
        label VARCHAR(64) NOT NULL,
        vertex_key VARCHAR(255) NOT NULL,
        properties TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS graph_edge (
        id VARCHAR(36) PRIMARY KEY,
        label VARCHAR(64) NOT NULL,
        src_id VARCHAR(36) NOT NULL,
        dst_id VARCHAR(36) NOT NULL,
        properties TEXT NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_graph_vertex_label_key ON graph_vertex (label, vertex_key)",
    # At most one Supplies edge per depot and missile type
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_graph_edge_supplies ON graph_edge (src_id, dst_id) WHERE label = 'Supplies'",
    "CREATE INDEX IF NOT EXISTS ix_graph_edge_src ON graph_edge (label, src_id)",
    "CREATE INDEX IF NOT EXISTS ix_graph_edge_dst ON graph_edge (label, dst_id)",
]


class GraphSource:
    """
    Process-wide handle on the graph store.

    Operations borrow sessions through session_scope().
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine,
        )

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Context manager for graph sessions.

        Commits on success, rolls back on error.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ensure_schema(self):
        """Create graph tables if missing."""
        with self.engine.begin() as conn:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(text(statement))

    def check_connection(self) -> bool:
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self):
        self.engine.dispose()


def create_graph_engine(url: str) -> Engine:
    """
    Build the graph engine.

    SQLite URLs (tests, local demos) get a single shared connection;
    server URLs get a small bounded pool with a connection wait limit.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.graph_pool_size,
        max_overflow=0,
        pool_timeout=settings.graph_pool_timeout_seconds,
    )

    if url.startswith("postgresql"):
        timeout_ms = settings.graph_statement_timeout_ms

        @event.listens_for(engine, "connect")
        def _set_statement_timeout(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute(f"SET statement_timeout = {int(timeout_ms)}")
            cursor.close()

    return engine


_source: Optional[GraphSource] = None


def connect_graph(url: Optional[str] = None, enabled: Optional[bool] = None) -> Optional[GraphSource]:
    """
    Initialize the shared graph source.

    Returns:
        GraphSource, or None when disabled or the connection failed
    """
    global _source
    if enabled is None:
        enabled = settings.graph_enabled
    if not enabled:
        logger.warning("graph_disabled", reason="GRAPH_ENABLED=false")
        return None

    try:
        source = GraphSource(create_graph_engine(url or settings.graph_database_url))
        source.ensure_schema()
    except SQLAlchemyError as e:
        logger.error("graph_connection_failed", error=str(e))
        logger.warning("graph_unavailable", detail="supply chain functionality will not be available")
        return None

    logger.info("graph_connected")
    _source = source
    return source


def get_graph_source() -> Optional[GraphSource]:
    return _source


def close_graph():
    """Dispose the shared graph source."""
    global _source
    if _source is not None:
        try:
            _source.close()
            logger.info("graph_closed")
        except SQLAlchemyError as e:
            logger.error("graph_close_failed", error=str(e))
        _source = None
