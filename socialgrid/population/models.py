"""
Population models.

Core entities:
- User: a person with a location, a social rating and a derived status
- Region: a node of the COUNTRY -> REGION -> CITY -> DISTRICT tree
  carrying aggregated statistics

Documents are stored with camelCase keys; `_id` maps to `id`.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SocialStatus(Enum):
    """Status tiers derived from the social rating."""
    LOW = "LOW"
    REGULAR = "REGULAR"
    IMPORTANT = "IMPORTANT"
    VIP = "VIP"


class RegionType(Enum):
    """Levels of the region hierarchy."""
    COUNTRY = "COUNTRY"
    REGION = "REGION"
    CITY = "CITY"
    DISTRICT = "DISTRICT"


# Depth in the region tree; children sit strictly deeper than their parent
REGION_DEPTH = {
    RegionType.COUNTRY: 0,
    RegionType.REGION: 1,
    RegionType.CITY: 2,
    RegionType.DISTRICT: 3,
}


# Single 0..100 rating scale
RATING_MIN = 0.0
RATING_MAX = 100.0

VIP_THRESHOLD = 90.0
IMPORTANT_THRESHOLD = 70.0
REGULAR_THRESHOLD = 40.0

IMPORTANT_STATUSES = (SocialStatus.IMPORTANT, SocialStatus.VIP)

EARTH_RADIUS_KM = 6371.0


def derive_status(rating: float) -> SocialStatus:
    """Map a social rating onto its status tier."""
    if rating >= VIP_THRESHOLD:
        return SocialStatus.VIP
    elif rating >= IMPORTANT_THRESHOLD:
        return SocialStatus.IMPORTANT
    elif rating >= REGULAR_THRESHOLD:
        return SocialStatus.REGULAR
    return SocialStatus.LOW


def clamp_rating(rating: float) -> float:
    return max(RATING_MIN, min(RATING_MAX, rating))


def is_important(status: SocialStatus) -> bool:
    return status in IMPORTANT_STATUSES


@dataclass
class GeoLocation:
    """A point on the map plus its GeoJSON form for 2dsphere indexing."""
    latitude: float
    longitude: float

    @property
    def position(self) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    def distance_km(self, other: "GeoLocation") -> float:
        """Haversine distance to another point in kilometers."""
        lat_distance = math.radians(other.latitude - self.latitude)
        lon_distance = math.radians(other.longitude - self.longitude)

        a = (
            math.sin(lat_distance / 2) ** 2
            + math.cos(math.radians(self.latitude))
            * math.cos(math.radians(other.latitude))
            * math.sin(lon_distance / 2) ** 2
        )
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return EARTH_RADIUS_KM * c

    def to_document(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "position": self.position,
        }

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> Optional["GeoLocation"]:
        if not doc:
            return None
        if "latitude" in doc and "longitude" in doc:
            return cls(latitude=float(doc["latitude"]), longitude=float(doc["longitude"]))
        position = doc.get("position") or {}
        coordinates = position.get("coordinates")
        if coordinates and len(coordinates) == 2:
            return cls(latitude=float(coordinates[1]), longitude=float(coordinates[0]))
        return None


@dataclass
class User:
    """
    A member of the population.

    Inactive users are excluded from every aggregation and region query.
    """
    username: str
    social_rating: float = 50.0
    status: SocialStatus = SocialStatus.REGULAR
    current_location: Optional[GeoLocation] = None
    region_id: Optional[str] = None
    district_id: Optional[str] = None
    country_id: Optional[str] = None
    last_location_update_timestamp: Optional[int] = None  # epoch ms
    active: bool = True
    id: Optional[str] = None

    def apply_rating(self, rating: float):
        """Set the rating and re-derive the status."""
        self.social_rating = rating
        self.status = derive_status(rating)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "username": self.username,
            "socialRating": self.social_rating,
            "status": self.status.value,
            "currentLocation": self.current_location.to_document() if self.current_location else None,
            "regionId": self.region_id,
            "districtId": self.district_id,
            "countryId": self.country_id,
            "lastLocationUpdateTimestamp": self.last_location_update_timestamp,
            "active": self.active,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def to_dict(self) -> Dict[str, Any]:
        """JSON form used by the API and realtime pushes."""
        doc = self.to_document()
        doc.pop("_id", None)
        return {"id": self.id, **doc}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "User":
        rating = doc.get("socialRating")
        status = doc.get("status")
        return cls(
            id=str(doc["_id"]) if doc.get("_id") is not None else doc.get("id"),
            username=doc.get("username", ""),
            social_rating=float(rating) if rating is not None else 0.0,
            status=SocialStatus(status) if status else derive_status(float(rating or 0.0)),
            current_location=GeoLocation.from_document(doc.get("currentLocation")),
            region_id=doc.get("regionId"),
            district_id=doc.get("districtId"),
            country_id=doc.get("countryId"),
            last_location_update_timestamp=doc.get("lastLocationUpdateTimestamp"),
            active=doc.get("active", True),
        )


@dataclass
class Region:
    """
    A node of the region tree.

    Aggregates reflect the last successful recompute of this node.
    """
    name: str
    type: RegionType
    parent_region_id: Optional[str] = None
    boundaries: Optional[Dict[str, Any]] = None  # GeoJSON Polygon
    population_count: int = 0
    average_social_rating: float = 0.0
    important_persons_count: int = 0
    under_threat: bool = False
    id: Optional[str] = None

    def clear_statistics(self):
        """Zero all aggregates; an empty region is never under threat."""
        self.population_count = 0
        self.average_social_rating = 0.0
        self.important_persons_count = 0
        self.under_threat = False

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "name": self.name,
            "type": self.type.value,
            "parentRegionId": self.parent_region_id,
            "boundaries": self.boundaries,
            "populationCount": self.population_count,
            "averageSocialRating": self.average_social_rating,
            "importantPersonsCount": self.important_persons_count,
            "underThreat": self.under_threat,
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def to_dict(self) -> Dict[str, Any]:
        doc = self.to_document()
        doc.pop("_id", None)
        return {"id": self.id, **doc}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Region":
        return cls(
            id=str(doc["_id"]) if doc.get("_id") is not None else doc.get("id"),
            name=doc.get("name", ""),
            type=RegionType(doc["type"]),
            parent_region_id=doc.get("parentRegionId"),
            boundaries=doc.get("boundaries"),
            population_count=int(doc.get("populationCount") or 0),
            average_social_rating=float(doc.get("averageSocialRating") or 0.0),
            important_persons_count=int(doc.get("importantPersonsCount") or 0),
            under_threat=bool(doc.get("underThreat", False)),
        )
