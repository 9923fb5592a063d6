"""
Service wiring.

Builds the service graph from the shared store handles. The FastAPI
lifespan stores the result on `app.state.services`.
"""

from dataclasses import dataclass
from typing import Optional

from pymongo.database import Database

from .db.graph import GraphSource
from .population.assessment import RegionAssessmentService
from .population.geospatial import GeospatialService
from .population.regions import RegionService
from .population.repository import RegionRepository, UserRepository
from .population.users import UserService
from .realtime.notifier import Notifier
from .settings import settings
from .supply.gateway import GraphGateway
from .supply.service import SupplyChainService


@dataclass
class Services:
    """Container for the application's services."""
    notifier: Notifier
    users: UserService
    regions: RegionService
    assessment: RegionAssessmentService
    geospatial: GeospatialService
    supply: SupplyChainService


def build_services(
    user_repository: UserRepository,
    region_repository: RegionRepository,
    graph_source: Optional[GraphSource],
    notifier: Optional[Notifier] = None,
) -> Services:
    """Wire services over the given repositories and graph source."""
    notifier = notifier or Notifier()
    geospatial = GeospatialService(region_repository)
    regions = RegionService(region_repository, user_repository, notifier)
    assessment = RegionAssessmentService(user_repository, region_repository, notifier)
    users = UserService(user_repository, notifier, region_service=regions)
    gateway = GraphGateway(graph_source, default_limit=settings.graph_listing_limit)
    supply = SupplyChainService(gateway, notifier, geospatial=geospatial)

    return Services(
        notifier=notifier,
        users=users,
        regions=regions,
        assessment=assessment,
        geospatial=geospatial,
        supply=supply,
    )


def build_services_for_database(db: Database, graph_source: Optional[GraphSource]) -> Services:
    return build_services(UserRepository(db), RegionRepository(db), graph_source)
