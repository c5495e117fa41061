"""Exception types raised by the optimization and lifecycle services."""

from __future__ import annotations


class FieldRouteError(Exception):
    """Base class for engine errors."""


class InvalidInputError(FieldRouteError, ValueError):
    """A precondition on the request failed before any computation started."""


class NotFoundError(FieldRouteError, LookupError):
    """The referenced route does not exist for the tenant."""


class InvalidTransitionError(FieldRouteError, ValueError):
    """The requested status change is not allowed from the route's current status."""

    def __init__(self, route_id: str, current: str, requested: str) -> None:
        super().__init__(f"Route '{route_id}' cannot move from '{current}' to '{requested}'.")
        self.route_id = route_id
        self.current = current
        self.requested = requested
