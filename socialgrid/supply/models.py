"""
Supply-chain graph models.

Vertices:
- SupplyDepot: storage / distribution node, keyed by depotId
- MissileType: stocked item type, keyed by missileTypeId

Edges:
- SupplyRoute: depot -> depot, with distance, riskFactor and isActive
- Supplies: depot -> missile type, with quantity (one edge per pair)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .gateway import GraphEdge, Vertex, safe_read

DEPOT_LABEL = "SupplyDepot"
MISSILE_TYPE_LABEL = "MissileType"
ROUTE_LABEL = "SupplyRoute"
SUPPLIES_LABEL = "Supplies"


class DepotType(Enum):
    REGIONAL_HUB = "REGIONAL_HUB"
    CITY_DEPOT = "CITY_DEPOT"
    DISTRIBUTION_POINT = "DISTRIBUTION_POINT"


def _optional_str(properties: Dict[str, Any], name: str) -> Optional[str]:
    value = safe_read(properties, name, "")
    return value or None


@dataclass
class Depot:
    """Supply depot vertex."""
    depot_id: str
    name: str
    latitude: float
    longitude: float
    capacity: int
    current_stock: int = 0
    type: Optional[str] = None
    security_level: Optional[str] = None

    def to_properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {
            "depotId": self.depot_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "capacity": self.capacity,
            "currentStock": self.current_stock,
        }
        if self.type:
            props["type"] = self.type
        if self.security_level:
            props["securityLevel"] = self.security_level
        return props

    def to_dict(self) -> Dict[str, Any]:
        return self.to_properties()

    @classmethod
    def from_vertex(cls, vertex: Vertex) -> "Depot":
        props = vertex.properties
        return cls(
            depot_id=safe_read(props, "depotId", vertex.key),
            name=safe_read(props, "name", ""),
            latitude=safe_read(props, "latitude", 0.0),
            longitude=safe_read(props, "longitude", 0.0),
            capacity=safe_read(props, "capacity", 0),
            current_stock=safe_read(props, "currentStock", 0),
            type=_optional_str(props, "type"),
            security_level=_optional_str(props, "securityLevel"),
        )


@dataclass
class MissileType:
    """Missile type vertex."""
    missile_type_id: str
    name: str
    range: float
    effect_radius: float

    def to_properties(self) -> Dict[str, Any]:
        return {
            "missileTypeId": self.missile_type_id,
            "name": self.name,
            "range": self.range,
            "effectRadius": self.effect_radius,
        }

    def to_dict(self) -> Dict[str, Any]:
        return self.to_properties()

    @classmethod
    def from_vertex(cls, vertex: Vertex) -> "MissileType":
        props = vertex.properties
        return cls(
            missile_type_id=safe_read(props, "missileTypeId", vertex.key),
            name=safe_read(props, "name", ""),
            range=safe_read(props, "range", 0.0),
            effect_radius=safe_read(props, "effectRadius", 0.0),
        )


@dataclass
class SupplyRoute:
    """Directed route between two depots."""
    source_depot_id: str
    target_depot_id: str
    distance: float
    risk_factor: float
    is_active: bool = True
    capacity: Optional[int] = None
    transport_type: Optional[str] = None
    security_level: Optional[str] = None

    def to_properties(self) -> Dict[str, Any]:
        props: Dict[str, Any] = {
            "distance": self.distance,
            "riskFactor": self.risk_factor,
            "isActive": self.is_active,
        }
        if self.capacity is not None:
            props["capacity"] = self.capacity
        if self.transport_type:
            props["transportType"] = self.transport_type
        if self.security_level:
            props["securityLevel"] = self.security_level
        return props

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceDepotId": self.source_depot_id,
            "targetDepotId": self.target_depot_id,
            **self.to_properties(),
        }

    @classmethod
    def from_edge(cls, edge: GraphEdge, source_depot_id: str, target_depot_id: str) -> "SupplyRoute":
        props = edge.properties
        capacity = safe_read(props, "capacity", -1)
        return cls(
            source_depot_id=source_depot_id,
            target_depot_id=target_depot_id,
            distance=safe_read(props, "distance", 0.0),
            risk_factor=safe_read(props, "riskFactor", 0.0),
            is_active=safe_read(props, "isActive", False),
            capacity=capacity if capacity >= 0 else None,
            transport_type=_optional_str(props, "transportType"),
            security_level=_optional_str(props, "securityLevel"),
        )


def is_active_route(edge: GraphEdge) -> bool:
    return safe_read(edge.properties, "isActive", False)


def route_risk(edge: GraphEdge) -> float:
    """Risk used to order traversal; unreadable risk sorts last."""
    return safe_read(edge.properties, "riskFactor", float("inf"))
