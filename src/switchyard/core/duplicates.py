"""Duplicate route detection."""

from switchyard.core.dispatch import ANY_METHOD
from switchyard.core.exceptions import DuplicateRouteError
from switchyard.core.route import Route


class DuplicateRouteDetector:
    """Rejects routes that collide with already registered ones.

    A route collides when its name is taken, or when its path is already
    registered for one of its methods. An any-method route collides with
    every method on the same path, in both registration orders.
    """

    def __init__(self) -> None:
        self._names: set[str] = set()
        # path -> method (or ANY) -> route name
        self._methods_by_path: dict[str, dict[str, str]] = {}

    def check_and_record(self, route: Route) -> None:
        """Check a route for collisions and remember it.

        Raises:
            DuplicateRouteError: If the route collides with a recorded one
        """
        if route.name in self._names:
            raise DuplicateRouteError(f"Route with name `{route.name}` already exists")

        methods = route.sorted_methods() or [ANY_METHOD]
        existing = self._methods_by_path.get(route.path, {})
        for method, name in existing.items():
            if method == ANY_METHOD or ANY_METHOD in methods or method in methods:
                raise DuplicateRouteError(
                    f"Route with path `{route.path}` already exists "
                    f"with method [{method}] and name [{name}]"
                )

        self._names.add(route.name)
        mapping = self._methods_by_path.setdefault(route.path, {})
        for method in methods:
            mapping[method] = route.name

    def reset(self) -> None:
        self._names.clear()
        self._methods_by_path.clear()
