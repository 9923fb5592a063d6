"""
Document store gateway for users and regions.

All user reads consider only active users unless the method says otherwise.
Lookups on missing ids return None; driver errors surface as StorageFailure.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..db.mongo import REGIONS, USERS
from ..errors import StorageFailure, ValidationFailure
from ..logging import get_logger
from .models import IMPORTANT_STATUSES, Region, RegionType, SocialStatus, User

logger = get_logger(__name__)

ACTIVE = {"active": True}


@contextmanager
def storage_guard(operation: str) -> Generator[None, None, None]:
    """Translate driver errors into StorageFailure; unique-key clashes are rejected as invalid."""
    try:
        yield
    except DuplicateKeyError as e:
        logger.warning("duplicate_key", operation=operation, error=str(e))
        raise ValidationFailure(f"Duplicate key on {operation}") from e
    except PyMongoError as e:
        logger.error("storage_failure", operation=operation, error=str(e))
        raise StorageFailure(operation, e) from e


def _point(longitude: float, latitude: float) -> Dict[str, Any]:
    return {"type": "Point", "coordinates": [longitude, latitude]}


def new_id() -> str:
    return str(ObjectId())


class UserRepository:
    """Typed access to the `users` collection."""

    def __init__(self, db: Database):
        self.collection = db[USERS]

    def _find(self, query: Dict[str, Any], operation: str) -> List[User]:
        with storage_guard(operation):
            return [User.from_document(doc) for doc in self.collection.find(query)]

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def find_by_id(self, user_id: str) -> Optional[User]:
        with storage_guard("find_user_by_id"):
            doc = self.collection.find_one({"_id": user_id})
        return User.from_document(doc) if doc else None

    def find_by_username(self, username: str) -> Optional[User]:
        with storage_guard("find_user_by_username"):
            doc = self.collection.find_one({"username": username})
        return User.from_document(doc) if doc else None

    def find_all(self) -> List[User]:
        """All users, including inactive ones."""
        return self._find({}, "find_all_users")

    def save(self, user: User) -> User:
        """Insert or replace a user; assigns an id when missing."""
        if user.id is None:
            user.id = new_id()
        with storage_guard("save_user"):
            self.collection.replace_one({"_id": user.id}, user.to_document(), upsert=True)
        return user

    def delete(self, user_id: str):
        with storage_guard("delete_user"):
            self.collection.delete_one({"_id": user_id})

    # ============================================================
    # HIERARCHY QUERIES
    # ============================================================

    def find_by_region(self, region_id: str) -> List[User]:
        return self._find({"regionId": region_id, **ACTIVE}, "find_users_by_region")

    def find_by_district(self, district_id: str) -> List[User]:
        return self._find({"districtId": district_id, **ACTIVE}, "find_users_by_district")

    def find_by_country(self, country_id: str) -> List[User]:
        return self._find({"countryId": country_id, **ACTIVE}, "find_users_by_country")

    def find_all_active(self) -> List[User]:
        return self._find(dict(ACTIVE), "find_all_active_users")

    def find_important_persons_in_region(self, region_id: str) -> List[User]:
        query = {
            "regionId": region_id,
            "status": {"$in": [s.value for s in IMPORTANT_STATUSES]},
            **ACTIVE,
        }
        return self._find(query, "find_important_persons_in_region")

    def find_below_rating(self, threshold: float) -> List[User]:
        return self._find({"socialRating": {"$lt": threshold}, **ACTIVE}, "find_users_below_rating")

    def find_by_status(self, status: SocialStatus) -> List[User]:
        return self._find({"status": status.value, **ACTIVE}, "find_users_by_status")

    # ============================================================
    # GEO QUERIES
    # ============================================================

    def find_near_point(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        """Nearest-first query over the 2dsphere index."""
        query = {
            "currentLocation.position": {
                "$near": {
                    "$geometry": _point(longitude, latitude),
                    "$maxDistance": max_meters,
                }
            },
            **ACTIVE,
        }
        return self._find(query, "find_users_near_point")

    def find_within_radius(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        """Unordered radius query; works without a geo index."""
        radians = max_meters / 6378100.0
        query = {
            "currentLocation.position": {
                "$geoWithin": {"$centerSphere": [[longitude, latitude], radians]}
            },
            **ACTIVE,
        }
        return self._find(query, "find_users_within_radius")


class RegionRepository:
    """Typed access to the `regions` collection."""

    def __init__(self, db: Database):
        self.collection = db[REGIONS]

    def _find(self, query: Dict[str, Any], operation: str) -> List[Region]:
        with storage_guard(operation):
            return [Region.from_document(doc) for doc in self.collection.find(query)]

    def find_by_id(self, region_id: str) -> Optional[Region]:
        with storage_guard("find_region_by_id"):
            doc = self.collection.find_one({"_id": region_id})
        return Region.from_document(doc) if doc else None

    def find_all(self) -> List[Region]:
        return self._find({}, "find_all_regions")

    def save(self, region: Region) -> Region:
        if region.id is None:
            region.id = new_id()
        with storage_guard("save_region"):
            self.collection.replace_one({"_id": region.id}, region.to_document(), upsert=True)
        return region

    def save_statistics(self, region: Region) -> Optional[Region]:
        """Write only the aggregate fields; returns None if the region vanished."""
        update = {
            "$set": {
                "populationCount": region.population_count,
                "averageSocialRating": region.average_social_rating,
                "importantPersonsCount": region.important_persons_count,
                "underThreat": region.under_threat,
            }
        }
        with storage_guard("save_region_statistics"):
            doc = self.collection.find_one_and_update(
                {"_id": region.id}, update, return_document=ReturnDocument.AFTER
            )
        return Region.from_document(doc) if doc else None

    def delete(self, region_id: str):
        with storage_guard("delete_region"):
            self.collection.delete_one({"_id": region_id})

    def find_by_type(self, region_type: RegionType) -> List[Region]:
        return self._find({"type": region_type.value}, "find_regions_by_type")

    def find_by_parent(self, parent_region_id: str) -> List[Region]:
        return self._find({"parentRegionId": parent_region_id}, "find_regions_by_parent")

    def find_containing_point(self, longitude: float, latitude: float) -> List[Region]:
        query = {"boundaries": {"$geoIntersects": {"$geometry": _point(longitude, latitude)}}}
        return self._find(query, "find_regions_containing_point")

    def is_point_in_region(self, region_id: str, longitude: float, latitude: float) -> bool:
        query = {
            "_id": region_id,
            "boundaries": {"$geoIntersects": {"$geometry": _point(longitude, latitude)}},
        }
        with storage_guard("is_point_in_region"):
            return self.collection.count_documents(query, limit=1) > 0

    def find_under_threat(self, region_type: RegionType) -> List[Region]:
        return self._find({"type": region_type.value, "underThreat": True}, "find_regions_under_threat")

    def find_below_rating(self, threshold: float) -> List[Region]:
        return self._find({"averageSocialRating": {"$lt": threshold}}, "find_regions_below_rating")

    def find_low_rated_without_important_persons(self, threshold: float) -> List[Region]:
        query = {"averageSocialRating": {"$lt": threshold}, "importantPersonsCount": 0}
        return self._find(query, "find_low_rated_regions_without_important_persons")
