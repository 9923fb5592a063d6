"""Population, region hierarchy and strike assessment."""

from .models import (
    User,
    Region,
    GeoLocation,
    SocialStatus,
    RegionType,
    derive_status,
)
from .repository import UserRepository, RegionRepository
from .geospatial import GeospatialService
from .regions import RegionService
from .assessment import RegionAssessmentService
from .users import UserService

__all__ = [
    "User",
    "Region",
    "GeoLocation",
    "SocialStatus",
    "RegionType",
    "derive_status",
    "UserRepository",
    "RegionRepository",
    "GeospatialService",
    "RegionService",
    "RegionAssessmentService",
    "UserService",
]
