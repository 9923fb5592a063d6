"""
Missile supply-chain API routes.

When the graph store is disabled, mutations answer with an empty 2xx body and
queries answer with empty collections; none of these routes returns a 5xx for
an unavailable graph.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..services import Services
from ..supply.models import DepotType
from .deps import get_services

router = APIRouter(prefix="/api/missile-supply", tags=["missile-supply"])


@router.post("/depots", status_code=201)
def add_depot(
    depot_id: str = Query(alias="depotId", min_length=1),
    name: str = Query(min_length=1),
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    capacity: int = Query(ge=0),
    depot_type: Optional[DepotType] = Query(default=None, alias="type"),
    security_level: Optional[str] = Query(default=None, alias="securityLevel"),
    services: Services = Depends(get_services),
):
    depot = services.supply.add_depot(
        depot_id,
        name,
        latitude,
        longitude,
        capacity,
        depot_type=depot_type.value if depot_type else None,
        security_level=security_level,
    )
    if depot is None:
        return Response(status_code=201)
    return depot.to_dict()


@router.post("/missile-types", status_code=201)
def add_missile_type(
    missile_type_id: str = Query(alias="missileTypeId", min_length=1),
    name: str = Query(min_length=1),
    range: float = Query(ge=0),
    effect_radius: float = Query(ge=0, alias="effectRadius"),
    services: Services = Depends(get_services),
):
    missile_type = services.supply.add_missile_type(missile_type_id, name, range, effect_radius)
    if missile_type is None:
        return Response(status_code=201)
    return missile_type.to_dict()


@router.post("/routes", status_code=201)
def add_supply_route(
    source_depot_id: str = Query(alias="sourceDepotId"),
    target_depot_id: str = Query(alias="targetDepotId"),
    distance: float = Query(gt=0),
    risk_factor: float = Query(ge=0, alias="riskFactor"),
    capacity: Optional[int] = Query(default=None, ge=0),
    transport_type: Optional[str] = Query(default=None, alias="transportType"),
    security_level: Optional[str] = Query(default=None, alias="securityLevel"),
    services: Services = Depends(get_services),
):
    route = services.supply.add_supply_route(
        source_depot_id,
        target_depot_id,
        distance,
        risk_factor,
        capacity=capacity,
        transport_type=transport_type,
        security_level=security_level,
    )
    if route is None:
        return Response(status_code=201)
    return route.to_dict()


@router.post("/depots/{depot_id}/missiles")
def add_missiles_to_depot(
    depot_id: str,
    missile_type_id: str = Query(alias="missileTypeId"),
    quantity: int = Query(ge=0),
    services: Services = Depends(get_services),
):
    result = services.supply.add_missiles_to_depot(depot_id, missile_type_id, quantity)
    if result is None:
        return Response(status_code=200)
    return result


@router.get("/routes/optimal")
def find_optimal_route(
    from_depot_id: str = Query(alias="fromDepotId"),
    to_depot_id: str = Query(alias="toDepotId"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    steps = services.supply.find_optimal_route(from_depot_id, to_depot_id)
    if not steps:
        raise HTTPException(
            status_code=404,
            detail=f"No route from {from_depot_id} to {to_depot_id}",
        )
    return steps


@router.put("/routes/status")
def set_route_status(
    source_depot_id: str = Query(alias="sourceDepotId"),
    target_depot_id: str = Query(alias="targetDepotId"),
    active: bool = Query(),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    route = services.supply.set_route_active(source_depot_id, target_depot_id, active)
    if route is None:
        raise HTTPException(
            status_code=404,
            detail=f"Route not found: {source_depot_id} -> {target_depot_id}",
        )
    return route.to_dict()


@router.get("/depots")
def get_all_depots(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in services.supply.find_all_depots()]


@router.get("/depots/missiles")
def find_depots_with_missile_type(
    missile_type_id: str = Query(alias="missileTypeId"),
    min_quantity: int = Query(default=1, ge=0, alias="minQuantity"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return services.supply.find_depots_with_missile_type(missile_type_id, min_quantity=min_quantity)


@router.get("/depots/region/{region_id}")
def find_depots_in_region(region_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in services.supply.find_depots_in_region(region_id)]


@router.get("/depots/{depot_id}")
def get_depot(depot_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    depot = services.supply.get_depot(depot_id)
    if depot is None:
        raise HTTPException(status_code=404, detail=f"Depot not found: {depot_id}")
    return depot.to_dict()


@router.get("/chain/visualization")
def get_supply_chain(services: Services = Depends(get_services)) -> Dict[str, List[Dict[str, Any]]]:
    return services.supply.get_supply_chain_snapshot()


@router.delete("/chain")
def clear_supply_chain(services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {"removed": services.supply.clear_supply_chain()}
