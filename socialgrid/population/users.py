"""
User service: lifecycle, locations and social ratings.

Every rating mutation re-derives the user's status. Mutations push realtime
events and refresh the statistics of the regions they touch; neither side
effect can fail the mutation itself.
"""

import time
from typing import Iterable, List, Optional

from ..errors import StorageFailure, ValidationFailure
from ..logging import get_logger
from ..realtime.notifier import Notifier
from ..settings import settings
from .models import GeoLocation, SocialStatus, User, clamp_rating, derive_status
from .regions import RegionService
from .repository import UserRepository

logger = get_logger(__name__)

# Rater impact (positive, negative) keyed by the target's status
RATER_IMPACT = {
    SocialStatus.VIP: (5.0, -10.0),
    SocialStatus.IMPORTANT: (3.0, -7.0),
    SocialStatus.REGULAR: (1.0, -3.0),
    SocialStatus.LOW: (0.5, -1.0),
}


def rater_impact(target_status: SocialStatus, rating_change: float) -> float:
    """Rating delta applied to a rater for rating a user of the given status."""
    positive, negative = RATER_IMPACT[target_status]
    return positive if rating_change > 0 else negative


def current_millis() -> int:
    return int(time.time() * 1000)


class UserService:
    """User lifecycle and rating logic."""

    def __init__(
        self,
        user_repository: UserRepository,
        notifier: Notifier,
        region_service: Optional[RegionService] = None,
        nearby_radius_km: Optional[float] = None,
    ):
        self.users = user_repository
        self.notifier = notifier
        self.region_service = region_service
        self.nearby_radius_km = (
            nearby_radius_km if nearby_radius_km is not None else settings.nearby_radius_km
        )

    # ============================================================
    # LIFECYCLE
    # ============================================================

    def create_user(self, user: User) -> User:
        existing = self.users.find_by_username(user.username)
        if existing is not None:
            raise ValidationFailure(f"Username already taken: {user.username}")
        user.status = derive_status(user.social_rating)
        return self.users.save(user)

    def update_user(self, user_id: str, user: User) -> Optional[User]:
        existing = self.users.find_by_id(user_id)
        if existing is None:
            return None
        holder = self.users.find_by_username(user.username)
        if holder is not None and holder.id != user_id:
            raise ValidationFailure(f"Username already taken: {user.username}")
        user.id = user_id
        if user.last_location_update_timestamp is None:
            user.last_location_update_timestamp = existing.last_location_update_timestamp
        user.status = derive_status(user.social_rating)
        saved = self.users.save(user)
        self._refresh_regions([existing.region_id, existing.district_id, saved.region_id, saved.district_id])
        return saved

    def delete_user(self, user_id: str) -> bool:
        existing = self.users.find_by_id(user_id)
        if existing is None:
            return False
        self.users.delete(user_id)
        self._refresh_regions([existing.region_id, existing.district_id])
        return True

    def find_by_id(self, user_id: str) -> Optional[User]:
        return self.users.find_by_id(user_id)

    def find_by_username(self, username: str) -> Optional[User]:
        return self.users.find_by_username(username)

    def find_all(self) -> List[User]:
        return self.users.find_all()

    # ============================================================
    # LOCATION
    # ============================================================

    def update_user_location(
        self,
        user_id: str,
        latitude: float,
        longitude: float,
        region_id: Optional[str],
        district_id: Optional[str],
        country_id: Optional[str],
    ) -> Optional[User]:
        """
        Set a user's location and region assignments in one write.

        Returns:
            Updated user, or None if the user does not exist
        """
        user = self.users.find_by_id(user_id)
        if user is None:
            return None

        previous = [user.region_id, user.district_id]
        user.current_location = GeoLocation(latitude=latitude, longitude=longitude)
        user.region_id = region_id
        user.district_id = district_id
        user.country_id = country_id
        user.last_location_update_timestamp = current_millis()
        saved = self.users.save(user)

        self.notifier.notify_user_location_update(saved)
        self._refresh_regions(previous + [region_id, district_id])
        self._push_nearby(saved)
        return saved

    def find_users_near_location(self, latitude: float, longitude: float, max_distance_km: float) -> List[User]:
        """Active users within a radius; falls back to a plain radius query."""
        max_meters = max_distance_km * 1000
        try:
            return self.users.find_near_point(longitude, latitude, max_meters)
        except StorageFailure as e:
            logger.warning("near_query_fallback", error=str(e))
        return self.users.find_within_radius(longitude, latitude, max_meters)

    def _push_nearby(self, user: User):
        if user.current_location is None:
            return
        try:
            nearby = self.find_users_near_location(
                user.current_location.latitude,
                user.current_location.longitude,
                self.nearby_radius_km,
            )
        except StorageFailure as e:
            logger.warning("nearby_push_skipped", user_id=user.id, error=str(e))
            return
        self.notifier.notify_nearby_users_update(user.id, [u for u in nearby if u.id != user.id])

    # ============================================================
    # RATINGS
    # ============================================================

    def update_social_rating(self, user_id: str, new_rating: float) -> Optional[User]:
        """Set an absolute rating and re-derive the status."""
        user = self.users.find_by_id(user_id)
        if user is None:
            return None
        user.apply_rating(new_rating)
        saved = self.users.save(user)
        self._after_rating_change(saved)
        return saved

    def update_rater_social_rating(self, rater_id: str, target_id: str, rating_change: float) -> Optional[User]:
        """
        Apply the consequence of rating another user to the rater.

        The impact depends on the target's status; the rater's rating is
        clamped to the rating scale.

        Returns:
            Updated rater, or None if either user does not exist
        """
        rater = self.users.find_by_id(rater_id)
        target = self.users.find_by_id(target_id)
        if rater is None or target is None:
            return None

        impact = rater_impact(target.status, rating_change)
        rater.apply_rating(clamp_rating(rater.social_rating + impact))
        saved = self.users.save(rater)

        logger.info(
            "rater_rating_updated",
            rater_id=rater_id,
            target_id=target_id,
            target_status=target.status.value,
            impact=impact,
            rating=saved.social_rating,
        )
        self._after_rating_change(saved)
        return saved

    def _after_rating_change(self, user: User):
        self.notifier.notify_social_rating_change(user.id, user)
        self._refresh_regions([user.region_id, user.district_id])

    # ============================================================
    # QUERIES
    # ============================================================

    def find_users_in_region(self, region_id: str) -> List[User]:
        return self.users.find_by_region(region_id)

    def find_important_persons_in_region(self, region_id: str) -> List[User]:
        return self.users.find_important_persons_in_region(region_id)

    def find_users_below_rating(self, threshold: float) -> List[User]:
        return self.users.find_below_rating(threshold)

    def find_users_by_status(self, status: SocialStatus) -> List[User]:
        return self.users.find_by_status(status)

    def _refresh_regions(self, region_ids: Iterable[Optional[str]]):
        """Recompute the statistics of each distinct region touched."""
        if self.region_service is None:
            return
        for region_id in dict.fromkeys(r for r in region_ids if r):
            try:
                self.region_service.recompute_region(region_id)
            except StorageFailure as e:
                logger.error("region_refresh_failed", region_id=region_id, error=str(e))
