"""
Strike assessment and cascade engine.

A region qualifies for a strike when its stored aggregates show a low
average rating and almost no important persons. Executing a strike
deactivates every affected user, zeroes the struck region and everything
below it, then re-aggregates each ancestor from its children, bottom-up.

Region states with respect to strikes:
    Normal -> UnderThreat     (predicate holds; flag set by the aggregator)
    UnderThreat -> Eliminated (strike executed; population 0, flag cleared)
    Eliminated -> Normal | UnderThreat (users re-assigned, region recomputed)
"""

from typing import Dict, Iterable, List, Optional

from ..errors import PartialCascade, StorageFailure
from ..logging import get_logger
from ..realtime.notifier import Notifier
from .models import REGION_DEPTH, Region, RegionType, User, is_important
from .repository import RegionRepository, UserRepository

logger = get_logger(__name__)

# Strike predicate thresholds
RATING_THRESHOLD = 35.0
IMPORTANT_RATIO_THRESHOLD = 0.02

DEFAULT_MISSILE_TYPE = "ORESHNIK"


def meets_strike_criteria(
    population: int,
    average_rating: float,
    important_persons: int,
) -> bool:
    """
    Strike predicate over a set of aggregates.

    An empty population never qualifies.
    """
    if population <= 0:
        return False
    ratio = important_persons / max(population, 1)
    return average_rating < RATING_THRESHOLD and ratio < IMPORTANT_RATIO_THRESHOLD


def evaluate(region: Region) -> bool:
    """Apply the strike predicate to a region's stored aggregates."""
    return meets_strike_criteria(
        region.population_count,
        region.average_social_rating,
        region.important_persons_count,
    )


def aggregate_children(parent: Region, children: Iterable[Region]) -> Region:
    """
    Set a parent's aggregates from its children, weighting by population.

    Children with zero population contribute nothing to the rating sum.
    """
    population = 0
    rating_sum = 0.0
    important_persons = 0
    active_children = 0

    for child in children:
        if child.population_count > 0:
            active_children += 1
            rating_sum += child.average_social_rating * child.population_count
        population += child.population_count
        important_persons += child.important_persons_count

    parent.population_count = population
    parent.important_persons_count = important_persons
    if population == 0:
        parent.average_social_rating = 0.0
        parent.under_threat = False
    else:
        parent.average_social_rating = rating_sum / population
        parent.under_threat = evaluate(parent)

    logger.debug(
        "children_aggregated",
        region_id=parent.id,
        population=population,
        active_children=active_children,
    )
    return parent


class RegionAssessmentService:
    """Decides on and executes strikes against regions."""

    def __init__(
        self,
        user_repository: UserRepository,
        region_repository: RegionRepository,
        notifier: Notifier,
    ):
        self.users = user_repository
        self.regions = region_repository
        self.notifier = notifier

    # ============================================================
    # PREDICATES
    # ============================================================

    def should_strike(self, region_id: str) -> bool:
        """Canonical predicate over the region's stored aggregates."""
        region = self.regions.find_by_id(region_id)
        if region is None:
            return False
        return evaluate(region)

    def should_strike_by_calculation(self, region_id: str) -> bool:
        """Same predicate, computed from the region's users instead of stored aggregates."""
        users = self.users.find_by_region(region_id)
        if not users:
            return False
        average = sum(u.social_rating for u in users) / len(users)
        important = sum(1 for u in users if is_important(u.status))
        return meets_strike_criteria(len(users), average, important)

    # ============================================================
    # STRIKE
    # ============================================================

    def collect_affected_users(self, region: Region) -> List[User]:
        """
        Users eliminated by a strike on this region.

        DISTRICT: users tagged with the district
        CITY: users of every child district plus users tagged with the city
        REGION: the CITY rule for every child city plus users tagged with the region
        COUNTRY: every active user
        """
        affected: Dict[str, User] = {}

        def add(users: Iterable[User]):
            for user in users:
                affected.setdefault(user.id, user)

        def add_city(city_id: str):
            for district in self.regions.find_by_parent(city_id):
                add(self.users.find_by_district(district.id))
            add(self.users.find_by_region(city_id))

        if region.type == RegionType.DISTRICT:
            add(self.users.find_by_district(region.id))
        elif region.type == RegionType.CITY:
            add_city(region.id)
        elif region.type == RegionType.REGION:
            for city in self.regions.find_by_parent(region.id):
                add_city(city.id)
            add(self.users.find_by_region(region.id))
        elif region.type == RegionType.COUNTRY:
            add(self.users.find_all_active())

        return list(affected.values())

    def strike(self, region_id: str, missile_type: str = DEFAULT_MISSILE_TYPE) -> bool:
        """
        Execute a strike and cascade the effect up the region tree.

        Steps run in order: eliminate users, zero every descendant and then the
        struck region, then re-aggregate each ancestor from its children. A storage failure halts
        the cascade; completed steps are not rolled back and re-running the
        strike is safe.

        Returns:
            True if the strike was authorized and the cascade completed
        """
        try:
            if not self.should_strike(region_id):
                logger.info("strike_not_authorized", region_id=region_id)
                return False

            region = self.regions.find_by_id(region_id)
            if region is None:
                return False
        except StorageFailure as e:
            logger.error("strike_assessment_failed", region_id=region_id, error=str(e))
            return False

        logger.info("strike_authorized", region_id=region_id, region_type=region.type.value)
        self.notifier.notify_missile_launch(region_id, missile_type)

        try:
            eliminated = self._eliminate(region)
            self._clear_descendants(region)
            self._zero_region(region)
        except StorageFailure as e:
            failure = PartialCascade(region_id, region_id, e)
            logger.error("partial_cascade", region_id=region_id, failed_at=region_id, error=str(failure))
            return False

        try:
            self._cascade_upward(region)
        except PartialCascade as e:
            logger.error("partial_cascade", region_id=region_id, failed_at=e.failed_at, error=str(e))
            return False

        logger.info("strike_executed", region_id=region_id, eliminated=eliminated)
        return True

    def _eliminate(self, region: Region) -> int:
        users = self.collect_affected_users(region)
        for user in users:
            user.apply_rating(0.0)
            user.active = False
            self.users.save(user)
        return len(users)

    def _clear_descendants(self, region: Region):
        """Zero every region below the struck one; their users are gone."""
        visited = {region.id}
        pending = [region]

        while pending:
            parent = pending.pop()
            for child in self.regions.find_by_parent(parent.id):
                if child.id in visited or REGION_DEPTH[child.type] <= REGION_DEPTH[parent.type]:
                    continue
                visited.add(child.id)
                pending.append(child)
                self._zero_region(child)

    def _zero_region(self, region: Region):
        region.clear_statistics()
        saved = self.regions.save_statistics(region) or region
        self.notifier.notify_region_status_update(saved)

    def _cascade_upward(self, region: Region):
        """Walk parent links to the root, re-aggregating each ancestor."""
        visited = {region.id}
        parent_id: Optional[str] = region.parent_region_id

        while parent_id:
            if parent_id in visited:
                logger.error("region_cycle_detected", region_id=parent_id)
                return
            visited.add(parent_id)

            try:
                ancestor = self.regions.find_by_id(parent_id)
                if ancestor is None:
                    logger.warning("broken_parent_link", region_id=parent_id)
                    return

                children = self.regions.find_by_parent(ancestor.id)
                aggregate_children(ancestor, children)
                saved = self.regions.save_statistics(ancestor) or ancestor
            except StorageFailure as e:
                raise PartialCascade(region.id, parent_id, e) from e

            self.notifier.notify_region_status_update(saved)
            parent_id = ancestor.parent_region_id
