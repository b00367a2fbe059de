"""Switchyard exception hierarchy.

Shared by the parser, generator, registry and cache backends so callers can
catch one base type. Failed matches are not exceptions: they are returned as
``MatchResult`` values.
"""


class SwitchyardError(Exception):
    """Base for all switchyard errors."""


class RouteSyntaxError(SwitchyardError, ValueError):
    """Raised when a route pattern cannot be parsed.

    Covers unbalanced token braces, malformed variable names, misplaced
    optional chains and constraints that are not valid regular expressions.
    """

    def __init__(self, message: str, pattern: str | None = None) -> None:
        self.pattern = pattern
        if pattern is not None:
            message = f"{message} in route pattern `{pattern}`"
        super().__init__(message)


class DuplicateAttributeError(RouteSyntaxError):
    """Raised when the same variable name appears twice in one pattern."""

    def __init__(self, name: str, pattern: str | None = None) -> None:
        self.name = name
        super().__init__(f"Cannot use the same attribute twice [{name}]", pattern)


class InvalidRouteError(SwitchyardError, ValueError):
    """Raised when a route record is built from invalid values."""


class DuplicateRouteError(SwitchyardError):
    """Raised when a route collides with an already registered one."""


class RouteNotFoundError(SwitchyardError, LookupError):
    """Raised when a route name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Route with name [{name}] not found")


class MissingAttributeError(SwitchyardError, LookupError):
    """Raised when URL generation lacks a required attribute."""

    def __init__(self, attribute: str, route_name: str) -> None:
        self.attribute = attribute
        self.route_name = route_name
        super().__init__(
            f"Parameter value for [{attribute}] is missing for route [{route_name}]"
        )


class AttributeMismatchError(SwitchyardError, ValueError):
    """Raised when a supplied attribute does not satisfy its constraint."""

    def __init__(self, attribute: str, constraint: str, route_name: str) -> None:
        self.attribute = attribute
        self.constraint = constraint
        self.route_name = route_name
        super().__init__(
            f"Parameter value for [{attribute}] did not match the regex "
            f"`{constraint}` in route [{route_name}]"
        )


class CacheError(SwitchyardError, RuntimeError):
    """Raised when a compiled-data cache backend cannot be used."""
