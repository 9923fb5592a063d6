# tests/test_region_statistics.py
"""
Test region statistics aggregation.

Verifies recompute from active users, empty-region handling and the
under-threat flag.
"""

from socialgrid.population.models import Region, RegionType, User
from socialgrid.realtime.notifier import TOPIC_REGION_STATUS


def _district(services, name="D"):
    city = services.regions.create_region(Region(name="City", type=RegionType.CITY, parent_region_id="region"))
    return services.regions.create_region(
        Region(name=name, type=RegionType.DISTRICT, parent_region_id=city.id)
    )


def _populate(services, region_id, ratings):
    for index, rating in enumerate(ratings):
        services.users.create_user(
            User(
                username=f"{region_id}-{index}",
                social_rating=rating,
                region_id=region_id,
                district_id=region_id,
            )
        )


class TestRecomputeRegion:
    """Tests for per-region recompute."""

    def test_low_rated_district_is_under_threat(self, services):
        district = _district(services)
        _populate(services, district.id, [10, 20, 30, 40])

        region = services.regions.recompute_region(district.id)

        assert region.population_count == 4
        assert region.average_social_rating == 25.0
        assert region.important_persons_count == 0
        assert region.under_threat is True

    def test_important_persons_lift_threat(self, services):
        """One important person in four is far above the 2% ratio."""
        district = _district(services)
        _populate(services, district.id, [5, 5, 5, 75])

        region = services.regions.recompute_region(district.id)

        assert region.average_social_rating == 22.5
        assert region.important_persons_count == 1
        assert region.under_threat is False

    def test_high_average_is_not_under_threat(self, services):
        district = _district(services)
        _populate(services, district.id, [50, 60])

        assert services.regions.recompute_region(district.id).under_threat is False

    def test_empty_region_zeroes_aggregates(self, services, region_repository):
        district = _district(services)
        district.population_count = 7
        district.average_social_rating = 12.0
        district.under_threat = True
        region_repository.save(district)

        region = services.regions.recompute_region(district.id)

        assert region.population_count == 0
        assert region.average_social_rating == 0.0
        assert region.important_persons_count == 0
        assert region.under_threat is False

    def test_inactive_users_not_counted(self, services):
        district = _district(services)
        _populate(services, district.id, [10, 20])
        services.users.create_user(
            User(username="gone", social_rating=0.0, region_id=district.id, active=False)
        )

        assert services.regions.recompute_region(district.id).population_count == 2

    def test_recompute_persists_and_publishes(self, services, recorder):
        district = _district(services)
        _populate(services, district.id, [80])
        recorder.listen(TOPIC_REGION_STATUS)

        services.regions.recompute_region(district.id)

        stored = services.regions.get_region(district.id)
        assert stored.population_count == 1
        assert stored.important_persons_count == 1
        assert recorder.payloads(TOPIC_REGION_STATUS)[0]["populationCount"] == 1

    def test_missing_region_returns_none(self, services):
        assert services.regions.recompute_region("missing") is None

    def test_recompute_keeps_descriptive_fields(self, services):
        district = _district(services, name="Arbat")
        _populate(services, district.id, [30])

        region = services.regions.recompute_region(district.id)

        assert region.name == "Arbat"
        assert region.type == RegionType.DISTRICT
        assert region.parent_region_id == district.parent_region_id


class TestRegionQueries:
    """Tests for region listing queries."""

    def test_recompute_all_and_under_threat(self, services):
        low = _district(services, name="Low")
        high = _district(services, name="High")
        _populate(services, low.id, [10, 10])
        _populate(services, high.id, [60, 60])

        services.regions.recompute_all()

        threatened = services.regions.find_regions_under_threat(RegionType.DISTRICT)
        assert [r.name for r in threatened] == ["Low"]

    def test_sub_regions_and_type(self, services):
        country = services.regions.create_region(Region(name="C", type=RegionType.COUNTRY))
        services.regions.create_region(Region(name="R1", type=RegionType.REGION, parent_region_id=country.id))
        services.regions.create_region(Region(name="R2", type=RegionType.REGION, parent_region_id=country.id))

        children = sorted(r.name for r in services.regions.find_sub_regions(country.id))

        assert children == ["R1", "R2"]
        assert len(services.regions.find_regions_by_type(RegionType.REGION)) == 2
        assert len(services.regions.find_regions_by_type(RegionType.COUNTRY)) == 1

    def test_low_rated_without_important_persons(self, services):
        bleak = _district(services, name="Bleak")
        guarded = _district(services, name="Guarded")
        _populate(services, bleak.id, [10, 20])
        _populate(services, guarded.id, [10, 20, 95])
        services.regions.recompute_all()

        names = [
            r.name
            for r in services.regions.find_low_rated_regions_without_important_persons(50)
            if r.type == RegionType.DISTRICT
        ]

        assert names == ["Bleak"]

    def test_regions_below_rating(self, services):
        bleak = _district(services, name="Bleak")
        fair = _district(services, name="Fair")
        _populate(services, bleak.id, [10, 20])
        _populate(services, fair.id, [60, 80])
        services.regions.recompute_region(bleak.id)
        services.regions.recompute_region(fair.id)

        names = [
            r.name
            for r in services.regions.find_regions_below_rating(50)
            if r.type == RegionType.DISTRICT
        ]

        assert names == ["Bleak"]
