"""
Region API routes.

Region CRUD, statistics recompute, strike assessment and execution.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..population.assessment import DEFAULT_MISSILE_TYPE
from ..population.models import Region, RegionType
from ..services import Services
from .deps import get_services

router = APIRouter(prefix="/api/regions", tags=["regions"])


class RegionPayload(BaseModel):
    """Region body for create / update. Aggregates are server-computed."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    type: RegionType
    parent_region_id: Optional[str] = Field(default=None, alias="parentRegionId")
    boundaries: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def check_parent(self):
        if self.type == RegionType.COUNTRY and self.parent_region_id is not None:
            raise ValueError("A COUNTRY region cannot have a parent")
        if self.type != RegionType.COUNTRY and self.parent_region_id is None:
            raise ValueError(f"A {self.type.value} region requires parentRegionId")
        return self

    def to_region(self) -> Region:
        return Region(
            name=self.name,
            type=self.type,
            parent_region_id=self.parent_region_id,
            boundaries=self.boundaries,
        )


def _dump(regions: List[Region]) -> List[Dict[str, Any]]:
    return [r.to_dict() for r in regions]


def _require(services: Services, region_id: str) -> Region:
    region = services.regions.get_region(region_id)
    if region is None:
        raise HTTPException(status_code=404, detail=f"Region not found: {region_id}")
    return region


@router.post("", status_code=201)
def create_region(payload: RegionPayload, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.regions.create_region(payload.to_region()).to_dict()


@router.get("")
def get_all_regions(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.get_all_regions())


@router.post("/recompute")
def recompute_all_regions(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.recompute_all())


@router.get("/containing-point")
def get_regions_containing_point(
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return _dump(services.regions.find_regions_containing_point(latitude, longitude))


@router.get("/type/{region_type}")
def get_regions_by_type(region_type: RegionType, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.find_regions_by_type(region_type))


@router.get("/under-threat/{region_type}")
def get_regions_under_threat(region_type: RegionType, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.find_regions_under_threat(region_type))


@router.get("/below-rating/{threshold}")
def get_regions_below_rating(threshold: float, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.find_regions_below_rating(threshold))


@router.get("/{region_id}")
def get_region(region_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return _require(services, region_id).to_dict()


@router.put("/{region_id}")
def update_region(region_id: str, payload: RegionPayload, services: Services = Depends(get_services)) -> Dict[str, Any]:
    existing = _require(services, region_id)
    region = payload.to_region()
    region.id = region_id
    # Keep the last computed aggregates
    region.population_count = existing.population_count
    region.average_social_rating = existing.average_social_rating
    region.important_persons_count = existing.important_persons_count
    region.under_threat = existing.under_threat
    return services.regions.update_region(region).to_dict()


@router.delete("/{region_id}", status_code=204)
def delete_region(region_id: str, services: Services = Depends(get_services)) -> Response:
    _require(services, region_id)
    services.regions.delete_region(region_id)
    return Response(status_code=204)


@router.get("/{region_id}/children")
def get_sub_regions(region_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.regions.find_sub_regions(region_id))


@router.post("/{region_id}/recompute")
def recompute_region(region_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    region = services.regions.recompute_region(region_id)
    if region is None:
        raise HTTPException(status_code=404, detail=f"Region not found: {region_id}")
    return region.to_dict()


@router.get("/{region_id}/assessment")
def assess_region(region_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    _require(services, region_id)
    return {
        "regionId": region_id,
        "shouldStrike": services.assessment.should_strike(region_id),
        "shouldStrikeByCalculation": services.assessment.should_strike_by_calculation(region_id),
    }


@router.post("/{region_id}/strike")
def strike_region(
    region_id: str,
    missile_type: str = Query(default=DEFAULT_MISSILE_TYPE, alias="missileType"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Execute a strike if the region qualifies; runs the full cascade synchronously."""
    _require(services, region_id)
    executed = services.assessment.strike(region_id, missile_type=missile_type)
    return {"regionId": region_id, "executed": executed}
