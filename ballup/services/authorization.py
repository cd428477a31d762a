"""
Ownership checks shared by every mutating game and location operation.
"""

from typing import Any

from ballup.api.errors import ForbiddenError


def can_mutate(actor_id: str, resource: Any) -> bool:
    """True when the actor created the resource (anything with a ``creator_id``)."""
    return actor_id is not None and actor_id == getattr(resource, "creator_id", None)


def ensure_can_mutate(actor_id: str, resource: Any, message: str = "Not authorized to modify this resource") -> None:
    if not can_mutate(actor_id, resource):
        raise ForbiddenError(message)
