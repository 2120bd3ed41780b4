# paygate/x402/routes.py
"""
Route matching: decides whether a request is protected and at what price.
"""
import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Pattern

from paygate.x402.config import RouteConfig, X402Config
from paygate.x402.constants import DEFAULT_METHODS

logger = logging.getLogger(__name__)

# "*" matches any suffix, ":name" matches exactly one path segment
_TOKEN_PATTERN = re.compile(r"(\*|:\w+)")


def path_to_regex(path: str) -> Pattern:
    """
    Compile an Express-style route pattern into an anchored regex.

        /api/weather -> ^/api/weather$
        /api/*       -> ^/api/.*$
        /api/:id     -> ^/api/[^/]+$
    """
    parts = []
    for token in _TOKEN_PATTERN.split(path):
        if token == "*":
            parts.append(".*")
        elif token.startswith(":") and len(token) > 1:
            parts.append("[^/]+")
        else:
            parts.append(re.escape(token))
    return re.compile("".join(parts))


@dataclass(frozen=True)
class RouteMatcher:
    pattern: Pattern
    methods: FrozenSet[str]
    route: RouteConfig

    def matches(self, path: str, method: str) -> bool:
        return self.pattern.fullmatch(path) is not None and method.upper() in self.methods


class RouteResolver:
    """
    Resolves (path, method) to the RouteConfig that prices it.

    With explicit routes the first declared match wins. Without routes every
    request is protected at the blanket price, whatever its method.
    """

    def __init__(self, config: X402Config):
        self._price = config.price
        self._description = config.description
        self._matchers: List[RouteMatcher] = [
            RouteMatcher(
                pattern=path_to_regex(route.path),
                methods=frozenset(route.methods or DEFAULT_METHODS),
                route=route,
            )
            for route in config.routes
        ]

    def resolve(self, path: str, method: str) -> Optional[RouteConfig]:
        """Return the matching route, or None when the request is unprotected."""
        if self._matchers:
            for matcher in self._matchers:
                if matcher.matches(path, method):
                    return matcher.route
            return None

        if self._price:
            return RouteConfig(path="*", price=self._price, description=self._description)

        return None
