"""
Supply-chain service.

Depot / missile type / route management, stock accrual and lowest-risk
route search over the property graph. Storage failures are logged and turned
into empty results; with no graph source every operation short-circuits.
Each successful mutation pushes one supply-chain snapshot.
"""

from typing import Any, Dict, List, Optional

from ..errors import NotFound, StorageFailure, ValidationFailure
from ..logging import get_logger
from ..population.geospatial import GeospatialService
from ..realtime.notifier import Notifier
from .gateway import GraphEdge, GraphGateway, Vertex, safe_read
from .models import (
    DEPOT_LABEL,
    MISSILE_TYPE_LABEL,
    ROUTE_LABEL,
    SUPPLIES_LABEL,
    Depot,
    MissileType,
    SupplyRoute,
    is_active_route,
    route_risk,
)
from .routing import DEFAULT_MAX_HOPS, Hop, greedy_lowest_risk_path

logger = get_logger(__name__)


class SupplyChainService:
    """Supply-chain commands and queries."""

    def __init__(
        self,
        gateway: GraphGateway,
        notifier: Notifier,
        geospatial: Optional[GeospatialService] = None,
    ):
        self.graph = gateway
        self.notifier = notifier
        self.geospatial = geospatial

    @property
    def available(self) -> bool:
        return self.graph.available

    def _require_graph(self, operation: str) -> bool:
        if not self.graph.available:
            self.graph.warn_unavailable(operation)
            return False
        return True

    # ============================================================
    # MUTATIONS
    # ============================================================

    def add_depot(
        self,
        depot_id: str,
        name: str,
        latitude: float,
        longitude: float,
        capacity: int,
        depot_type: Optional[str] = None,
        security_level: Optional[str] = None,
    ) -> Optional[Depot]:
        """Create a depot with zero stock."""
        if not self._require_graph("add_depot"):
            return None
        if capacity < 0:
            raise ValidationFailure("Depot capacity must be >= 0")

        depot = Depot(
            depot_id=depot_id,
            name=name,
            latitude=latitude,
            longitude=longitude,
            capacity=capacity,
            current_stock=0,
            type=depot_type,
            security_level=security_level,
        )
        try:
            if self.graph.find_vertex(DEPOT_LABEL, depot_id) is not None:
                raise ValidationFailure(f"Depot already exists: {depot_id}")
            self.graph.add_vertex(DEPOT_LABEL, depot_id, depot.to_properties())
        except StorageFailure as e:
            logger.error("add_depot_failed", depot_id=depot_id, error=str(e))
            return None

        logger.info("depot_added", depot_id=depot_id, capacity=capacity)
        self.publish_snapshot()
        return depot

    def add_missile_type(
        self,
        missile_type_id: str,
        name: str,
        range: float,
        effect_radius: float,
    ) -> Optional[MissileType]:
        if not self._require_graph("add_missile_type"):
            return None

        missile_type = MissileType(
            missile_type_id=missile_type_id,
            name=name,
            range=range,
            effect_radius=effect_radius,
        )
        try:
            if self.graph.find_vertex(MISSILE_TYPE_LABEL, missile_type_id) is not None:
                raise ValidationFailure(f"Missile type already exists: {missile_type_id}")
            self.graph.add_vertex(MISSILE_TYPE_LABEL, missile_type_id, missile_type.to_properties())
        except StorageFailure as e:
            logger.error("add_missile_type_failed", missile_type_id=missile_type_id, error=str(e))
            return None

        logger.info("missile_type_added", missile_type_id=missile_type_id)
        return missile_type

    def add_supply_route(
        self,
        source_depot_id: str,
        target_depot_id: str,
        distance: float,
        risk_factor: float,
        capacity: Optional[int] = None,
        transport_type: Optional[str] = None,
        security_level: Optional[str] = None,
    ) -> Optional[SupplyRoute]:
        """Create an active directed route between two existing depots."""
        if not self._require_graph("add_supply_route"):
            return None
        if distance <= 0:
            raise ValidationFailure("Route distance must be > 0")
        if risk_factor < 0:
            raise ValidationFailure("Route riskFactor must be >= 0")

        route = SupplyRoute(
            source_depot_id=source_depot_id,
            target_depot_id=target_depot_id,
            distance=distance,
            risk_factor=risk_factor,
            is_active=True,
            capacity=capacity,
            transport_type=transport_type,
            security_level=security_level,
        )
        try:
            source = self.graph.find_vertex(DEPOT_LABEL, source_depot_id)
            target = self.graph.find_vertex(DEPOT_LABEL, target_depot_id)
            if source is None or target is None:
                missing = source_depot_id if source is None else target_depot_id
                raise ValidationFailure(f"Unknown depot: {missing}")
            self.graph.add_edge(ROUTE_LABEL, source.id, target.id, route.to_properties())
        except StorageFailure as e:
            logger.error("add_supply_route_failed", source=source_depot_id, target=target_depot_id, error=str(e))
            return None

        logger.info("supply_route_added", source=source_depot_id, target=target_depot_id, risk=risk_factor)
        self.publish_snapshot()
        return route

    def add_missiles_to_depot(self, depot_id: str, missile_type_id: str, quantity: int) -> Optional[Dict[str, Any]]:
        """
        Add stock of a missile type to a depot.

        Upserts the depot's Supplies edge (quantity += q) and raises the
        depot's currentStock by q, in one transaction. The depot row is
        locked first, so concurrent additions to one depot apply in turn.

        Returns:
            {depotId, missileTypeId, quantity, currentStock} after the update
        """
        if not self._require_graph("add_missiles_to_depot"):
            return None
        if quantity < 0:
            raise ValidationFailure("Quantity must be >= 0")

        try:
            with self.graph.batch() as graph:
                depot = graph.find_vertex(DEPOT_LABEL, depot_id, for_update=True)
                if depot is None:
                    raise NotFound("depot", depot_id)
                missile_type = graph.find_vertex(MISSILE_TYPE_LABEL, missile_type_id)
                if missile_type is None:
                    raise NotFound("missile type", missile_type_id)

                supplies = graph.find_edges(SUPPLIES_LABEL, src_id=depot.id, dst_id=missile_type.id, limit=1)
                if supplies:
                    edge = supplies[0]
                    total = safe_read(edge.properties, "quantity", 0) + quantity
                    graph.update_edge_properties(edge.id, {"quantity": total})
                else:
                    total = quantity
                    graph.add_edge(SUPPLIES_LABEL, depot.id, missile_type.id, {"quantity": total})

                stock = safe_read(depot.properties, "currentStock", 0) + quantity
                graph.update_vertex_properties(depot.id, {"currentStock": stock})
        except StorageFailure as e:
            logger.error("add_missiles_failed", depot_id=depot_id, missile_type_id=missile_type_id, error=str(e))
            return None

        logger.info("missiles_added", depot_id=depot_id, missile_type_id=missile_type_id, quantity=quantity)
        self.publish_snapshot()
        return {
            "depotId": depot_id,
            "missileTypeId": missile_type_id,
            "quantity": total,
            "currentStock": stock,
        }

    def set_route_active(self, source_depot_id: str, target_depot_id: str, active: bool) -> Optional[SupplyRoute]:
        """
        Toggle the routes between two depots.

        Returns:
            The updated route, or None if either depot or the route is missing
        """
        if not self._require_graph("set_route_active"):
            return None
        try:
            with self.graph.batch() as graph:
                source = graph.find_vertex(DEPOT_LABEL, source_depot_id)
                target = graph.find_vertex(DEPOT_LABEL, target_depot_id)
                if source is None or target is None:
                    return None
                edges = graph.find_edges(ROUTE_LABEL, src_id=source.id, dst_id=target.id)
                if not edges:
                    return None
                updated = [graph.update_edge_properties(edge.id, {"isActive": active}) for edge in edges]
                updated = [edge for edge in updated if edge is not None]
                if not updated:
                    return None
        except StorageFailure as e:
            logger.error("set_route_active_failed", source=source_depot_id, target=target_depot_id, error=str(e))
            return None

        logger.info("route_status_changed", source=source_depot_id, target=target_depot_id, active=active)
        self.publish_snapshot()
        return SupplyRoute.from_edge(updated[0], source_depot_id, target_depot_id)

    def clear_supply_chain(self) -> Dict[str, int]:
        """Drop every supply-chain edge and vertex."""
        if not self._require_graph("clear_supply_chain"):
            return {}
        try:
            with self.graph.batch() as graph:
                counts = {
                    "routes": graph.drop_edges(ROUTE_LABEL),
                    "supplies": graph.drop_edges(SUPPLIES_LABEL),
                    "depots": graph.drop_vertices(DEPOT_LABEL),
                    "missileTypes": graph.drop_vertices(MISSILE_TYPE_LABEL),
                }
        except StorageFailure as e:
            logger.error("clear_supply_chain_failed", error=str(e))
            return {}

        logger.info("supply_chain_cleared", **counts)
        self.publish_snapshot()
        return counts

    # ============================================================
    # QUERIES
    # ============================================================

    def find_all_depots(self, limit: Optional[int] = None) -> List[Depot]:
        try:
            vertices = self.graph.list_vertices(DEPOT_LABEL, limit=limit)
        except StorageFailure:
            return []
        return [Depot.from_vertex(v) for v in vertices]

    def get_depot(self, depot_id: str) -> Optional[Depot]:
        try:
            vertex = self.graph.find_vertex(DEPOT_LABEL, depot_id)
        except StorageFailure:
            return None
        return Depot.from_vertex(vertex) if vertex else None

    def find_depots_in_region(self, region_id: str, limit: Optional[int] = None) -> List[Depot]:
        """Depots whose coordinates fall inside a region's boundaries."""
        if self.geospatial is None:
            return []
        depots = self.find_all_depots(limit=limit)
        try:
            return [
                d for d in depots
                if self.geospatial.is_point_in_region(region_id, d.latitude, d.longitude)
            ]
        except StorageFailure as e:
            logger.error("find_depots_in_region_failed", region_id=region_id, error=str(e))
            return []

    def find_depots_with_missile_type(
        self,
        missile_type_id: str,
        min_quantity: int = 1,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Depots stocking at least `min_quantity` of a missile type."""
        try:
            missile_type = self.graph.find_vertex(MISSILE_TYPE_LABEL, missile_type_id)
            if missile_type is None:
                return []
            supplies = self.graph.in_edges(
                missile_type.id,
                SUPPLIES_LABEL,
                limit=limit,
                where=lambda e: safe_read(e.properties, "quantity", 0) >= min_quantity,
            )
            depots = self.graph.get_vertices(e.src_id for e in supplies)
        except StorageFailure:
            return []

        results = []
        for edge in supplies:
            vertex = depots.get(edge.src_id)
            if vertex is None or vertex.label != DEPOT_LABEL:
                continue
            depot = Depot.from_vertex(vertex)
            results.append({
                "depotId": depot.depot_id,
                "name": depot.name,
                "latitude": depot.latitude,
                "longitude": depot.longitude,
                "currentStock": depot.current_stock,
                "quantity": safe_read(edge.properties, "quantity", 0),
            })
        return results

    def get_all_supply_routes(self, limit: Optional[int] = None) -> List[SupplyRoute]:
        """Active routes, with depot ids resolved."""
        try:
            edges = self.graph.find_edges(ROUTE_LABEL, limit=limit, where=is_active_route)
            vertices = self.graph.get_vertices(
                [e.src_id for e in edges] + [e.dst_id for e in edges]
            )
        except StorageFailure:
            return []

        routes = []
        for edge in edges:
            source = vertices.get(edge.src_id)
            target = vertices.get(edge.dst_id)
            # Skip routes whose endpoints are not readable depots
            if source is None or target is None:
                continue
            source_id = safe_read(source.properties, "depotId", "")
            target_id = safe_read(target.properties, "depotId", "")
            if not source_id or not target_id:
                continue
            routes.append(SupplyRoute.from_edge(edge, source_id, target_id))
        return routes

    def get_supply_chain_snapshot(self, limit: Optional[int] = None) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "depots": [d.to_dict() for d in self.find_all_depots(limit=limit)],
            "routes": [r.to_dict() for r in self.get_all_supply_routes(limit=limit)],
        }

    def publish_snapshot(self):
        self.notifier.notify_supply_chain_update(self.get_supply_chain_snapshot())

    # ============================================================
    # ROUTE SEARCH
    # ============================================================

    def _active_hops(self, vertex: Vertex) -> List[Hop]:
        edges: List[GraphEdge] = self.graph.out_edges(vertex.id, ROUTE_LABEL, where=is_active_route)
        targets = self.graph.get_vertices(e.dst_id for e in edges)
        hops = [
            (edge, targets[edge.dst_id])
            for edge in sorted(edges, key=route_risk)
            if edge.dst_id in targets and targets[edge.dst_id].label == DEPOT_LABEL
        ]
        return hops

    def find_optimal_route(
        self,
        from_depot_id: str,
        to_depot_id: str,
        max_hops: int = DEFAULT_MAX_HOPS,
    ) -> List[Dict[str, Any]]:
        """
        Lowest-risk route between two depots.

        Returns:
            Alternating depot / route steps, or [] if no path exists
        """
        if not self._require_graph("find_optimal_route"):
            return []
        try:
            start = self.graph.find_vertex(DEPOT_LABEL, from_depot_id)
            target = self.graph.find_vertex(DEPOT_LABEL, to_depot_id)
            if start is None or target is None:
                return []
            path = greedy_lowest_risk_path(start, target.id, self._active_hops, max_hops=max_hops)
        except StorageFailure as e:
            logger.error("find_optimal_route_failed", source=from_depot_id, target=to_depot_id, error=str(e))
            return []

        if path is None:
            logger.info("no_route_found", source=from_depot_id, target=to_depot_id)
            return []
        return path.steps()
