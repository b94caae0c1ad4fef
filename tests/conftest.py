"""Shared fixtures: a temporary content store and fakes for the external services."""

import pytest
import requests

from mudozzal.config import load_config
from mudozzal.collection.image_search import ImageSearch, SearchResult
from mudozzal.processing.vision_model import VisionModel
from mudozzal.store.content_store import ContentStore
from mudozzal.store.records import ManifestEntry


class FakeResponse:
    def __init__(self, status_code=200, content=b"", reason="OK", payload=None):
        self.status_code = status_code
        self.content = content
        self.reason = reason
        self.payload = payload

    def json(self):
        if self.payload is None:
            raise ValueError("response body is not JSON")
        return self.payload


class FakeSession:
    """requests.Session stand-in serving canned bytes per URL."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []
        self.params = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        self.params.append(kwargs.get("params"))
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, FakeResponse):
            return route
        if isinstance(route, tuple):
            return FakeResponse(status_code=route[0], content=route[1])
        return FakeResponse(content=route)


class FakeSearch(ImageSearch):
    def __init__(self, results=None, failing=()):
        self.results = results or {}
        self.failing = set(failing)
        self.queries = []

    def search(self, keyword):
        self.queries.append(keyword)
        if keyword in self.failing:
            raise requests.HTTPError("search provider error")
        return [SearchResult(url=u) if isinstance(u, str) else u
                for u in self.results.get(keyword, [])]


class FakeVisionModel(VisionModel):
    """
    Returns canned answers in order. An answer that is an exception instance
    is raised instead of returned.
    """

    def __init__(self, answers=None, default='{"relevant": false}'):
        self.answers = list(answers or [])
        self.default = default
        self.calls = []

    def classify(self, image_bytes, mime_type, prompt):
        self.calls.append({"bytes": image_bytes, "mime_type": mime_type, "prompt": prompt})
        answer = self.answers.pop(0) if self.answers else self.default
        if isinstance(answer, Exception):
            raise answer
        return answer


def image_bytes(seed, size=6000):
    """Distinct fake image payloads of a given size."""
    head = f"img-{seed}-".encode()
    return head + b"\x00" * max(0, size - len(head))


@pytest.fixture
def config(tmp_path):
    cfg = load_config(None)
    cfg["paths"]["root_dir"] = str(tmp_path)
    cfg["collection"]["keyword_interval"] = 0
    cfg["collection"]["url_interval"] = 0
    cfg["collection"]["max_retries"] = 1
    cfg["classification"]["request_interval"] = 0
    return cfg


@pytest.fixture
def store(config):
    return ContentStore(config)


@pytest.fixture
def add_raw_image(store):
    """Write an image into raw/images and register it in the manifest."""

    def _add(filename, data=None, keyword="무한도전 짤", width=None, height=None,
             status="pending"):
        data = data if data is not None else image_bytes(filename)
        store.write_image(filename, data)
        manifest = store.load_manifest()
        entry = ManifestEntry(
            filename=filename,
            source_url=f"https://example.com/{filename}",
            content_hash=f"hash-{filename}",
            keyword=keyword,
            width=width,
            height=height,
        )
        entry.mark(status)
        manifest.add(entry)
        store.save_manifest(manifest)
        return entry

    return _add

