"""
Error taxonomy.

Gateways translate driver exceptions into these kinds so that services and
routes never see raw pymongo / SQLAlchemy errors.

- NotFound: a referenced id does not exist (HTTP 404)
- ValidationFailure: invalid input, e.g. a route to an unknown depot (HTTP 400)
- StorageFailure: document store failure, not retried (HTTP 503)
- GraphUnavailable: graph connection absent; operations short-circuit
- PartialCascade: a strike cascade stopped part-way; safe to retry
"""

from typing import Optional


class SocialGridError(Exception):
    """Base class for all service errors."""


class NotFound(SocialGridError):
    """Referenced entity does not exist."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class ValidationFailure(SocialGridError):
    """Invalid input."""


class StorageFailure(SocialGridError):
    """Persistence operation failed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Storage failure during {operation}{detail}")


class GraphUnavailable(SocialGridError):
    """Graph store connection is not available."""


class PartialCascade(SocialGridError):
    """A strike cascade halted before reaching the root."""

    def __init__(self, region_id: str, failed_at: str, cause: Optional[BaseException] = None):
        self.region_id = region_id
        self.failed_at = failed_at
        self.cause = cause
        super().__init__(
            f"Cascade for region {region_id} halted at {failed_at}: {cause}"
        )
