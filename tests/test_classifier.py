"""Tests for request classification."""

from __future__ import annotations

import httpx
import pytest

from reqcache.classifier import RequestClassifier, is_interceptable
from reqcache.models import CacheSettings, RouteClass

ORIGIN = "https://knower.life"


@pytest.fixture
def classifier() -> RequestClassifier:
    return RequestClassifier(
        CacheSettings(
            origin=ORIGIN,
            static_manifest=["/", "/index.html", "/styles.css", "/icons/", "/api/chat/help.html"],
            api_hosts=["api.knower.life"],
        )
    )


def _get(url: str) -> httpx.Request:
    return httpx.Request("GET", url)


class TestInterceptable:
    @pytest.mark.parametrize("method", ["GET", "HEAD", "get"])
    def test_read_methods(self, method: str) -> None:
        assert is_interceptable(httpx.Request(method, f"{ORIGIN}/a"))

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    def test_mutating_methods(self, method: str) -> None:
        assert not is_interceptable(httpx.Request(method, f"{ORIGIN}/a"))


class TestClassify:
    def test_manifest_entry_is_static(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/styles.css")) is RouteClass.STATIC_ASSET

    def test_root_is_static(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/")) is RouteClass.STATIC_ASSET

    def test_root_is_not_a_prefix(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/about")) is RouteClass.OTHER

    def test_directory_entry_is_prefix(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/icons/192.png")) is RouteClass.STATIC_ASSET

    def test_query_string_does_not_affect_route(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/styles.css?v=3")) is RouteClass.STATIC_ASSET

    def test_manifest_path_on_other_origin(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get("https://cdn.example.com/styles.css")) is RouteClass.OTHER

    def test_api_prefix(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/api/chat")) is RouteClass.API_ENDPOINT
        assert classifier.classify(_get(f"{ORIGIN}/api/analyze/42")) is RouteClass.API_ENDPOINT

    def test_api_prefix_respects_segments(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get(f"{ORIGIN}/api/chatter")) is RouteClass.OTHER

    def test_api_prefix_on_any_host(self, classifier: RequestClassifier) -> None:
        request = _get("https://backend.example.com/api/chat/send")
        assert classifier.classify(request) is RouteClass.API_ENDPOINT

    def test_api_host(self, classifier: RequestClassifier) -> None:
        assert classifier.classify(_get("https://api.knower.life/v1/x")) is RouteClass.API_ENDPOINT

    def test_api_rule_wins_over_manifest(self, classifier: RequestClassifier) -> None:
        request = _get(f"{ORIGIN}/api/chat/help.html")
        assert classifier.classify(request) is RouteClass.API_ENDPOINT

    def test_rule_order(self, classifier: RequestClassifier) -> None:
        assert [rule.name for rule in classifier.rules] == ["api-prefix", "static-manifest"]


class TestSameOrigin:
    def test_port_matters(self) -> None:
        classifier = RequestClassifier(CacheSettings(origin="http://localhost:8000"))
        assert classifier.is_same_origin(httpx.URL("http://localhost:8000/a"))
        assert not classifier.is_same_origin(httpx.URL("http://localhost:9000/a"))
