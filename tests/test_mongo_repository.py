# tests/test_mongo_repository.py
"""
Test the Mongo document store gateway.

Requires a reachable MongoDB; skipped otherwise.
"""

import pytest

from socialgrid.errors import ValidationFailure
from socialgrid.population.models import GeoLocation, Region, RegionType, SocialStatus, User
from socialgrid.population.repository import RegionRepository, UserRepository


def _box(min_lon, min_lat, max_lon, max_lat):
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


class TestUserRepository:
    """Tests for UserRepository."""

    def test_save_assigns_id_and_round_trips(self, mongo_db):
        users = UserRepository(mongo_db)
        user = users.save(User(username="ivan", social_rating=72.0, status=SocialStatus.IMPORTANT))

        stored = users.find_by_id(user.id)

        assert stored.username == "ivan"
        assert stored.status == SocialStatus.IMPORTANT
        assert users.find_by_username("ivan").id == user.id

    def test_duplicate_username_is_validation_failure(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="ivan"))

        with pytest.raises(ValidationFailure):
            users.save(User(username="ivan"))

    def test_find_by_status(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="vip", social_rating=95.0, status=SocialStatus.VIP))
        users.save(User(username="gone", social_rating=95.0, status=SocialStatus.VIP, active=False))
        users.save(User(username="low", social_rating=5.0, status=SocialStatus.LOW))

        assert [u.username for u in users.find_by_status(SocialStatus.VIP)] == ["vip"]

    def test_region_queries_skip_inactive(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="alive", region_id="r", district_id="d"))
        users.save(User(username="gone", region_id="r", district_id="d", active=False))

        assert [u.username for u in users.find_by_region("r")] == ["alive"]
        assert [u.username for u in users.find_by_district("d")] == ["alive"]
        assert len(users.find_all()) == 2

    def test_important_persons(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="vip", social_rating=95.0, status=SocialStatus.VIP, region_id="r"))
        users.save(User(username="low", social_rating=5.0, status=SocialStatus.LOW, region_id="r"))

        assert [u.username for u in users.find_important_persons_in_region("r")] == ["vip"]

    def test_near_point_orders_by_distance(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="far", current_location=GeoLocation(latitude=0.0, longitude=0.05)))
        users.save(User(username="near", current_location=GeoLocation(latitude=0.0, longitude=0.01)))
        users.save(User(username="away", current_location=GeoLocation(latitude=10.0, longitude=10.0)))

        near = users.find_near_point(0.0, 0.0, 10_000)
        within = users.find_within_radius(0.0, 0.0, 10_000)

        assert [u.username for u in near] == ["near", "far"]
        assert sorted(u.username for u in within) == ["far", "near"]


class TestRegionRepository:
    """Tests for RegionRepository."""

    def test_save_statistics_only_touches_aggregates(self, mongo_db):
        regions = RegionRepository(mongo_db)
        region = regions.save(Region(name="D", type=RegionType.DISTRICT, parent_region_id="k"))
        region.name = "renamed locally"
        region.population_count = 4
        region.average_social_rating = 25.0
        region.under_threat = True

        saved = regions.save_statistics(region)

        assert saved.name == "D"
        assert saved.population_count == 4
        assert saved.under_threat is True
        assert regions.find_under_threat(RegionType.DISTRICT)[0].id == region.id

    def test_save_statistics_missing_region(self, mongo_db):
        regions = RegionRepository(mongo_db)

        assert regions.save_statistics(Region(name="x", type=RegionType.CITY, id="missing")) is None

    def test_point_queries(self, mongo_db):
        regions = RegionRepository(mongo_db)
        box = regions.save(Region(name="Box", type=RegionType.COUNTRY, boundaries=_box(30, 50, 40, 60)))

        assert regions.is_point_in_region(box.id, 35.0, 55.0) is True
        assert regions.is_point_in_region(box.id, 35.0, 45.0) is False
        assert [r.name for r in regions.find_containing_point(35.0, 55.0)] == ["Box"]

    def test_find_below_rating(self, mongo_db):
        regions = RegionRepository(mongo_db)
        regions.save(Region(name="Bleak", type=RegionType.COUNTRY, average_social_rating=20.0))
        regions.save(Region(name="Fair", type=RegionType.COUNTRY, average_social_rating=70.0))

        assert [r.name for r in regions.find_below_rating(50)] == ["Bleak"]

    def test_hierarchy_queries(self, mongo_db):
        regions = RegionRepository(mongo_db)
        country = regions.save(Region(name="C", type=RegionType.COUNTRY))
        regions.save(Region(name="R", type=RegionType.REGION, parent_region_id=country.id))

        assert [r.name for r in regions.find_by_parent(country.id)] == ["R"]
        assert [r.name for r in regions.find_by_type(RegionType.COUNTRY)] == ["C"]


class TestUserHierarchyQueries:
    """Tests for country and rating queries."""

    def test_country_and_rating(self, mongo_db):
        users = UserRepository(mongo_db)
        users.save(User(username="a", social_rating=20.0, status=SocialStatus.LOW, country_id="c"))
        users.save(User(username="b", social_rating=60.0, country_id="c"))
        users.save(User(username="c", social_rating=10.0, status=SocialStatus.LOW, country_id="other"))

        assert sorted(u.username for u in users.find_by_country("c")) == ["a", "b"]
        assert sorted(u.username for u in users.find_below_rating(30)) == ["a", "c"]
        assert len(users.find_all_active()) == 3
