"""
User API routes.

CRUD, location and rating updates, and population queries.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field

from ..population.models import GeoLocation, SocialStatus, User
from ..services import Services
from .deps import get_services

router = APIRouter(prefix="/api/users", tags=["users"])


class LocationPayload(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class UserPayload(BaseModel):
    """User body for create / update."""
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(min_length=1)
    social_rating: float = Field(default=50.0, ge=0, le=100, alias="socialRating")
    status: Optional[SocialStatus] = None  # always re-derived from the rating
    current_location: Optional[LocationPayload] = Field(default=None, alias="currentLocation")
    region_id: Optional[str] = Field(default=None, alias="regionId")
    district_id: Optional[str] = Field(default=None, alias="districtId")
    country_id: Optional[str] = Field(default=None, alias="countryId")
    active: bool = True

    def to_user(self) -> User:
        location = None
        if self.current_location is not None:
            location = GeoLocation(
                latitude=self.current_location.latitude,
                longitude=self.current_location.longitude,
            )
        return User(
            username=self.username,
            social_rating=self.social_rating,
            current_location=location,
            region_id=self.region_id,
            district_id=self.district_id,
            country_id=self.country_id,
            active=self.active,
        )


def _dump(users: List[User]) -> List[Dict[str, Any]]:
    return [u.to_dict() for u in users]


@router.post("", status_code=201)
def create_user(payload: UserPayload, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return services.users.create_user(payload.to_user()).to_dict()


@router.get("")
def get_all_users(services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.users.find_all())


@router.get("/near")
def get_users_near_location(
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    max_distance_km: float = Query(gt=0, alias="maxDistanceKm"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    return _dump(services.users.find_users_near_location(latitude, longitude, max_distance_km))


@router.get("/below-rating/{threshold}")
def get_users_below_rating(threshold: float, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.users.find_users_below_rating(threshold))


@router.get("/status/{status}")
def get_users_by_status(status: SocialStatus, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.users.find_users_by_status(status))


@router.get("/region/{region_id}")
def get_users_in_region(region_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.users.find_users_in_region(region_id))


@router.get("/region/{region_id}/important")
def get_important_persons_in_region(region_id: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return _dump(services.users.find_important_persons_in_region(region_id))


@router.get("/{user_id}")
def get_user(user_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    user = services.users.find_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    return user.to_dict()


@router.put("/{user_id}")
def update_user(user_id: str, payload: UserPayload, services: Services = Depends(get_services)) -> Dict[str, Any]:
    user = services.users.update_user(user_id, payload.to_user())
    if user is None:
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    return user.to_dict()


@router.delete("/{user_id}", status_code=204)
def delete_user(user_id: str, services: Services = Depends(get_services)) -> Response:
    if not services.users.delete_user(user_id):
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    return Response(status_code=204)


@router.put("/{user_id}/location")
def update_user_location(
    user_id: str,
    latitude: float = Query(ge=-90, le=90),
    longitude: float = Query(ge=-180, le=180),
    region_id: Optional[str] = Query(default=None, alias="regionId"),
    district_id: Optional[str] = Query(default=None, alias="districtId"),
    country_id: Optional[str] = Query(default=None, alias="countryId"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    user = services.users.update_user_location(
        user_id, latitude, longitude, region_id, district_id, country_id
    )
    if user is None:
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    return user.to_dict()


@router.put("/{user_id}/social-rating")
def update_social_rating(
    user_id: str,
    rating: float = Query(ge=0, le=100),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    user = services.users.update_social_rating(user_id, rating)
    if user is None:
        raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
    return user.to_dict()


@router.post("/{rater_id}/rate/{target_id}")
def rate_user(
    rater_id: str,
    target_id: str,
    rating_change: float = Query(alias="ratingChange"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Rate another user; the consequence is applied to the rater."""
    rater = services.users.update_rater_social_rating(rater_id, target_id, rating_change)
    if rater is None:
        raise HTTPException(status_code=404, detail="Rater or target not found")
    return rater.to_dict()
