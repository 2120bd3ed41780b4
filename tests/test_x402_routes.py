# tests/test_x402_routes.py
"""
Unit tests for route matching.
"""
import pytest

from paygate.x402.config import RouteConfig, X402Config
from paygate.x402.routes import RouteResolver, path_to_regex

from conftest import RECIPIENT


def make_resolver(**kwargs) -> RouteResolver:
    return RouteResolver(X402Config(recipient=RECIPIENT, **kwargs))


class TestPathToRegex:
    """Test route pattern compilation."""

    def test_literal_path(self):
        pattern = path_to_regex("/api/weather")
        assert pattern.fullmatch("/api/weather")
        assert not pattern.fullmatch("/api/weather/today")
        assert not pattern.fullmatch("/api")

    def test_wildcard_matches_any_suffix(self):
        pattern = path_to_regex("/api/*")
        assert pattern.fullmatch("/api/anything/here")
        assert pattern.fullmatch("/api/")
        assert not pattern.fullmatch("/other/api/x")

    def test_parameter_matches_one_segment(self):
        pattern = path_to_regex("/api/users/:id")
        assert pattern.fullmatch("/api/users/42")
        assert not pattern.fullmatch("/api/users/42/posts")
        assert not pattern.fullmatch("/api/users/")

    def test_regex_characters_are_literal(self):
        """Dots and other regex metacharacters in a pattern match themselves."""
        pattern = path_to_regex("/files/report.pdf")
        assert pattern.fullmatch("/files/report.pdf")
        assert not pattern.fullmatch("/files/reportXpdf")


class TestRouteResolver:
    """Test (path, method) resolution against configured rules."""

    def test_exact_path_matches_only_that_path(self):
        resolver = make_resolver(routes=[
            {"path": "/api/test", "price": "0.01"},
            {"path": "/api/other", "price": "0.05"},
        ])

        route = resolver.resolve("/api/test", "GET")

        assert route is not None
        assert route.price == "0.01"
        assert resolver.resolve("/api/test/extra", "GET") is None

    def test_wildcard_rule(self):
        resolver = make_resolver(routes=[{"path": "/api/*", "price": "0.02"}])

        route = resolver.resolve("/api/anything/here", "GET")

        assert route is not None
        assert route.price == "0.02"

    def test_no_match_is_unprotected(self):
        resolver = make_resolver(routes=[{"path": "/api/test", "price": "0.01"}])
        assert resolver.resolve("/other/path", "GET") is None

    def test_method_restriction(self):
        """A POST-only rule gates POST and lets GET through."""
        resolver = make_resolver(routes=[{"path": "/api/test", "price": "0.01", "methods": ["POST"]}])

        assert resolver.resolve("/api/test", "GET") is None
        assert resolver.resolve("/api/test", "POST") is not None

    def test_methods_are_case_insensitive(self):
        resolver = make_resolver(routes=[{"path": "/api/test", "price": "0.01", "methods": ["post"]}])
        assert resolver.resolve("/api/test", "POST") is not None
        assert resolver.resolve("/api/test", "post") is not None

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH"])
    def test_default_methods(self, method):
        resolver = make_resolver(routes=[{"path": "/api/test", "price": "0.01"}])
        assert resolver.resolve("/api/test", method) is not None

    def test_default_methods_exclude_options(self):
        resolver = make_resolver(routes=[{"path": "/api/test", "price": "0.01"}])
        assert resolver.resolve("/api/test", "OPTIONS") is None

    def test_first_declared_rule_wins(self):
        """When several rules match, the earliest one prices the request."""
        resolver = make_resolver(routes=[
            {"path": "/api/*", "price": "0.10"},
            {"path": "/api/cheap", "price": "0.01"},
        ])

        assert resolver.resolve("/api/cheap", "GET").price == "0.10"

    def test_method_filter_falls_through_to_later_rule(self):
        resolver = make_resolver(routes=[
            {"path": "/api/data", "price": "0.50", "methods": ["POST"]},
            {"path": "/api/*", "price": "0.01"},
        ])

        assert resolver.resolve("/api/data", "POST").price == "0.50"
        assert resolver.resolve("/api/data", "GET").price == "0.01"

    def test_blanket_price_protects_everything(self):
        resolver = make_resolver(price="0.01", description="Premium API")

        for method in ("GET", "POST", "OPTIONS", "HEAD"):
            route = resolver.resolve("/any/path", method)
            assert route == RouteConfig(path="*", price="0.01", description="Premium API")

    def test_routes_take_precedence_over_blanket_price(self):
        """With explicit routes, unmatched paths are unprotected even if a price is set."""
        resolver = make_resolver(price="0.01", routes=[{"path": "/api/test", "price": "0.05"}])

        assert resolver.resolve("/api/test", "GET").price == "0.05"
        assert resolver.resolve("/elsewhere", "GET") is None
