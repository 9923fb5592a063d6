"""
Geospatial checks against region boundaries.

Kept separate from the region and supply services so that both can depend
on it without depending on each other.
"""

from .repository import RegionRepository


class GeospatialService:
    """Point-in-region tests."""

    def __init__(self, region_repository: RegionRepository):
        self.regions = region_repository

    def is_point_in_region(self, region_id: str, latitude: float, longitude: float) -> bool:
        """
        Check whether a point lies within a region's boundaries.

        Returns False when the region is unknown or has no boundaries.
        """
        region = self.regions.find_by_id(region_id)
        if region is None or not region.boundaries:
            return False
        return self.regions.is_point_in_region(region_id, longitude, latitude)
