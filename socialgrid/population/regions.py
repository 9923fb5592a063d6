"""
Region service: region CRUD and statistics aggregation.

Aggregates are eventually consistent. They reflect the last successful
recompute of a node and are never updated atomically with user mutations.
"""

from typing import List, Optional

from ..logging import get_logger
from ..realtime.notifier import Notifier
from .assessment import evaluate
from .models import Region, RegionType, is_important
from .repository import RegionRepository, UserRepository

logger = get_logger(__name__)


class RegionService:
    """Region lifecycle and per-region statistics."""

    def __init__(
        self,
        region_repository: RegionRepository,
        user_repository: UserRepository,
        notifier: Notifier,
    ):
        self.regions = region_repository
        self.users = user_repository
        self.notifier = notifier

    # ============================================================
    # CRUD
    # ============================================================

    def create_region(self, region: Region) -> Region:
        return self.regions.save(region)

    def get_all_regions(self) -> List[Region]:
        return self.regions.find_all()

    def get_region(self, region_id: str) -> Optional[Region]:
        return self.regions.find_by_id(region_id)

    def update_region(self, region: Region) -> Region:
        return self.regions.save(region)

    def delete_region(self, region_id: str):
        self.regions.delete(region_id)

    def find_regions_by_type(self, region_type: RegionType) -> List[Region]:
        return self.regions.find_by_type(region_type)

    def find_sub_regions(self, parent_region_id: str) -> List[Region]:
        return self.regions.find_by_parent(parent_region_id)

    def find_regions_containing_point(self, latitude: float, longitude: float) -> List[Region]:
        return self.regions.find_containing_point(longitude, latitude)

    def find_regions_under_threat(self, region_type: RegionType) -> List[Region]:
        return self.regions.find_under_threat(region_type)

    def find_regions_below_rating(self, threshold: float) -> List[Region]:
        return self.regions.find_below_rating(threshold)

    def find_low_rated_regions_without_important_persons(self, threshold: float) -> List[Region]:
        return self.regions.find_low_rated_without_important_persons(threshold)

    # ============================================================
    # STATISTICS
    # ============================================================

    def recompute_region(self, region_id: str) -> Optional[Region]:
        """
        Recompute a region's aggregates from its active users.

        Returns:
            Updated region, or None if the region does not exist
        """
        region = self.regions.find_by_id(region_id)
        if region is None:
            return None

        users = self.users.find_by_region(region_id)
        if users:
            region.population_count = len(users)
            region.average_social_rating = sum(u.social_rating for u in users) / len(users)
            region.important_persons_count = sum(1 for u in users if is_important(u.status))
            region.under_threat = evaluate(region)
        else:
            region.clear_statistics()

        saved = self.regions.save_statistics(region) or region
        logger.info(
            "region_recomputed",
            region_id=region_id,
            population=saved.population_count,
            average_rating=round(saved.average_social_rating, 3),
            under_threat=saved.under_threat,
        )
        self.notifier.notify_region_status_update(saved)
        return saved

    def recompute_all(self) -> List[Region]:
        """Recompute every region in turn. Not a consistency guarantee."""
        updated = []
        for region in self.regions.find_all():
            result = self.recompute_region(region.id)
            if result is not None:
                updated.append(result)
        logger.info("regions_recomputed", count=len(updated))
        return updated
