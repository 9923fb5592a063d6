# tests/conftest.py
"""
Pytest configuration and fixtures.

Service tests run against in-memory repositories with the same method
surface as the Mongo gateway, and against a SQLite-backed graph source.

Mongo gateway tests require a reachable MongoDB. Set TEST_MONGODB_URI, or let
conftest fall back to MONGODB_URI from .env. If neither is reachable the
tests are skipped (not failed).
"""

import copy
import os
from typing import Any, Dict, List, Optional

import pytest
from dotenv import load_dotenv

from socialgrid.db.graph import GraphSource, create_graph_engine
from socialgrid.errors import StorageFailure
from socialgrid.population.models import (
    IMPORTANT_STATUSES,
    GeoLocation,
    Region,
    RegionType,
    SocialStatus,
    User,
)
from socialgrid.population.repository import new_id
from socialgrid.realtime.notifier import CallbackSubscriber, Message, Notifier
from socialgrid.services import build_services

load_dotenv()

TEST_MONGODB_URI = (
    os.environ.get("TEST_MONGODB_URI")
    or os.environ.get("MONGODB_URI")
    or "mongodb://localhost:27017"
)
TEST_MONGODB_DATABASE = os.environ.get("TEST_MONGODB_DATABASE", "socialgrid_test")


# ============================================================
# IN-MEMORY DOCUMENT STORE
# ============================================================

def _point_in_polygon(longitude: float, latitude: float, boundaries: Optional[Dict[str, Any]]) -> bool:
    """Ray casting over the outer ring of a GeoJSON Polygon."""
    if not boundaries or boundaries.get("type") != "Polygon":
        return False
    ring = boundaries["coordinates"][0]
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if (yi > latitude) != (yj > latitude):
            x_cross = (xj - xi) * (latitude - yi) / (yj - yi) + xi
            if longitude < x_cross:
                inside = not inside
        j = i
    return inside


class InMemoryUserRepository:
    """Dict-backed stand-in for UserRepository."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    def _load(self, doc) -> User:
        return User.from_document(copy.deepcopy(doc))

    def _where(self, predicate, active_only: bool = True) -> List[User]:
        return [
            self._load(doc) for doc in self.documents.values()
            if (not active_only or doc.get("active", True)) and predicate(doc)
        ]

    def find_by_id(self, user_id: str) -> Optional[User]:
        doc = self.documents.get(user_id)
        return self._load(doc) if doc else None

    def find_by_username(self, username: str) -> Optional[User]:
        users = self._where(lambda d: d["username"] == username, active_only=False)
        return users[0] if users else None

    def find_all(self) -> List[User]:
        return self._where(lambda d: True, active_only=False)

    def save(self, user: User) -> User:
        if user.id is None:
            user.id = new_id()
        self.documents[user.id] = copy.deepcopy(user.to_document())
        return user

    def delete(self, user_id: str):
        self.documents.pop(user_id, None)

    def find_by_region(self, region_id: str) -> List[User]:
        return self._where(lambda d: d.get("regionId") == region_id)

    def find_by_district(self, district_id: str) -> List[User]:
        return self._where(lambda d: d.get("districtId") == district_id)

    def find_by_country(self, country_id: str) -> List[User]:
        return self._where(lambda d: d.get("countryId") == country_id)

    def find_all_active(self) -> List[User]:
        return self._where(lambda d: True)

    def find_important_persons_in_region(self, region_id: str) -> List[User]:
        important = {s.value for s in IMPORTANT_STATUSES}
        return self._where(lambda d: d.get("regionId") == region_id and d.get("status") in important)

    def find_below_rating(self, threshold: float) -> List[User]:
        return self._where(lambda d: d.get("socialRating", 0) < threshold)

    def find_by_status(self, status: SocialStatus) -> List[User]:
        return self._where(lambda d: d.get("status") == status.value)

    def _within(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        origin = GeoLocation(latitude=latitude, longitude=longitude)
        found = []
        for user in self._where(lambda d: d.get("currentLocation") is not None):
            distance = origin.distance_km(user.current_location) * 1000
            if distance <= max_meters:
                found.append((distance, user))
        found.sort(key=lambda pair: pair[0])
        return [user for _, user in found]

    def find_near_point(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        return self._within(longitude, latitude, max_meters)

    def find_within_radius(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        return self._within(longitude, latitude, max_meters)


class NoGeoIndexUserRepository(InMemoryUserRepository):
    """Rejects nearest-first queries, as a store without a 2dsphere index does."""

    def __init__(self):
        super().__init__()
        self.near_calls = 0

    def find_near_point(self, longitude: float, latitude: float, max_meters: float) -> List[User]:
        self.near_calls += 1
        raise StorageFailure("find_users_near_point")


class InMemoryRegionRepository:
    """Dict-backed stand-in for RegionRepository."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    def _load(self, doc) -> Region:
        return Region.from_document(copy.deepcopy(doc))

    def _where(self, predicate) -> List[Region]:
        return [self._load(doc) for doc in self.documents.values() if predicate(doc)]

    def find_by_id(self, region_id: str) -> Optional[Region]:
        doc = self.documents.get(region_id)
        return self._load(doc) if doc else None

    def find_all(self) -> List[Region]:
        return self._where(lambda d: True)

    def save(self, region: Region) -> Region:
        if region.id is None:
            region.id = new_id()
        self.documents[region.id] = copy.deepcopy(region.to_document())
        return region

    def save_statistics(self, region: Region) -> Optional[Region]:
        doc = self.documents.get(region.id)
        if doc is None:
            return None
        doc.update({
            "populationCount": region.population_count,
            "averageSocialRating": region.average_social_rating,
            "importantPersonsCount": region.important_persons_count,
            "underThreat": region.under_threat,
        })
        return self._load(doc)

    def delete(self, region_id: str):
        self.documents.pop(region_id, None)

    def find_by_type(self, region_type: RegionType) -> List[Region]:
        return self._where(lambda d: d["type"] == region_type.value)

    def find_by_parent(self, parent_region_id: str) -> List[Region]:
        return self._where(lambda d: d.get("parentRegionId") == parent_region_id)

    def find_containing_point(self, longitude: float, latitude: float) -> List[Region]:
        return self._where(lambda d: _point_in_polygon(longitude, latitude, d.get("boundaries")))

    def is_point_in_region(self, region_id: str, longitude: float, latitude: float) -> bool:
        doc = self.documents.get(region_id)
        return doc is not None and _point_in_polygon(longitude, latitude, doc.get("boundaries"))

    def find_under_threat(self, region_type: RegionType) -> List[Region]:
        return self._where(lambda d: d["type"] == region_type.value and d.get("underThreat"))

    def find_below_rating(self, threshold: float) -> List[Region]:
        return self._where(lambda d: d.get("averageSocialRating", 0) < threshold)

    def find_low_rated_without_important_persons(self, threshold: float) -> List[Region]:
        return self._where(
            lambda d: d.get("averageSocialRating", 0) < threshold and d.get("importantPersonsCount", 0) == 0
        )


class FailingRegionRepository(InMemoryRegionRepository):
    """Raises StorageFailure when saving statistics for selected regions."""

    def __init__(self):
        super().__init__()
        self.fail_statistics_for = set()

    def save_statistics(self, region: Region) -> Optional[Region]:
        if region.id in self.fail_statistics_for:
            raise StorageFailure("save_region_statistics")
        return super().save_statistics(region)


# ============================================================
# REALTIME
# ============================================================

class MessageRecorder:
    """Subscribes to destinations and keeps every message it receives."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self.messages: List[Message] = []
        self.subscriber = CallbackSubscriber(self.messages.append)

    def listen(self, *destinations: str) -> "MessageRecorder":
        for destination in destinations:
            self.notifier.subscribe(destination, self.subscriber)
        return self

    def payloads(self, destination: str) -> List[Any]:
        return [m.payload for m in self.messages if m.destination == destination]


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def region_repository() -> InMemoryRegionRepository:
    return FailingRegionRepository()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def recorder(notifier) -> MessageRecorder:
    return MessageRecorder(notifier)


@pytest.fixture
def graph_source():
    """Fresh in-memory graph store per test."""
    source = GraphSource(create_graph_engine("sqlite://"))
    source.ensure_schema()
    yield source
    source.close()


@pytest.fixture
def services(user_repository, region_repository, graph_source, notifier):
    return build_services(user_repository, region_repository, graph_source, notifier=notifier)


@pytest.fixture
def no_geo_index_users() -> NoGeoIndexUserRepository:
    return NoGeoIndexUserRepository()


@pytest.fixture
def services_without_geo_index(no_geo_index_users, region_repository, notifier):
    return build_services(no_geo_index_users, region_repository, None, notifier=notifier)


@pytest.fixture
def services_without_graph(user_repository, region_repository, notifier):
    return build_services(user_repository, region_repository, None, notifier=notifier)


def square(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> Dict[str, Any]:
    """Closed GeoJSON polygon for an axis-aligned box."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [min_lon, min_lat],
            [max_lon, min_lat],
            [max_lon, max_lat],
            [min_lon, max_lat],
            [min_lon, min_lat],
        ]],
    }


@pytest.fixture
def polygon():
    return square


# ============================================================
# MONGO
# ============================================================

def _try_connect(uri: str):
    """Attempt a connection; return (client, None) or (None, error_msg)."""
    from pymongo import MongoClient
    from pymongo.errors import PyMongoError

    try:
        client = MongoClient(uri, serverSelectionTimeoutMS=500, tz_aware=True)
        client.admin.command("ping")
        return client, None
    except PyMongoError as exc:
        return None, str(exc)


@pytest.fixture(scope="session")
def mongo_client():
    """Mongo client for gateway tests. Skips the session if unreachable."""
    client, err = _try_connect(TEST_MONGODB_URI)
    if client is None:
        pytest.skip(f"MongoDB not reachable ({err}). Set TEST_MONGODB_URI or MONGODB_URI.")
    yield client
    client.close()


@pytest.fixture
def mongo_db(mongo_client):
    """Clean test database with indexes; dropped after each test."""
    from socialgrid.db.mongo import ensure_indexes

    mongo_client.drop_database(TEST_MONGODB_DATABASE)
    db = mongo_client[TEST_MONGODB_DATABASE]
    ensure_indexes(db)
    yield db
    mongo_client.drop_database(TEST_MONGODB_DATABASE)


# ============================================================
# AUTO-MARKER FOR MONGO TESTS
# ============================================================
# Automatically apply @pytest.mark.requires_mongo to tests that use
# Mongo fixtures, so "pytest -m 'not requires_mongo'" skips them.

MONGO_FIXTURES = {"mongo_client", "mongo_db"}


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests that use Mongo fixtures."""
    requires_mongo_marker = pytest.mark.requires_mongo

    for item in items:
        if hasattr(item, "fixturenames"):
            if any(fixture in MONGO_FIXTURES for fixture in item.fixturenames):
                if not any(mark.name == "requires_mongo" for mark in item.iter_markers()):
                    item.add_marker(requires_mongo_marker)
