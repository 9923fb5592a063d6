"""Supply-chain property graph."""

from .gateway import GraphGateway, Vertex, GraphEdge, safe_read
from .models import Depot, MissileType, SupplyRoute, DepotType
from .service import SupplyChainService

__all__ = [
    "GraphGateway",
    "Vertex",
    "GraphEdge",
    "safe_read",
    "Depot",
    "MissileType",
    "SupplyRoute",
    "DepotType",
    "SupplyChainService",
]
