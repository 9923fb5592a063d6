# Database module
from .graph import GraphSource, connect_graph, close_graph, get_graph_source
from .mongo import connect_mongo, close_mongo, get_database, ensure_indexes

__all__ = [
    "GraphSource",
    "connect_graph",
    "close_graph",
    "get_graph_source",
    "connect_mongo",
    "close_mongo",
    "get_database",
    "ensure_indexes",
]
