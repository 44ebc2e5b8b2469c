"""Shared fixtures for the gitlab_artifact test suite."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest

from GitlabArtifact import net
from GitlabArtifact.settings import GitlabArtifactSettings, invalidate_default_settings_cache, load_settings
from GitlabArtifact.testing import build_zip_archive

FIXTURES_DIR = Path(__file__).parent / "fixtures"
API_BASE = "https://gitlab.example.com"
TOKEN = "glpat-test-token"

ResponseFactory = Callable[[httpx.Request], httpx.Response]


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep real GitLab credentials and cached clients out of every test."""

    for key in list(os.environ):
        if key.upper().startswith("GITLAB_ARTIFACT_") or key.upper() == "GITLAB_API_TOKEN":
            monkeypatch.delenv(key, raising=False)
    invalidate_default_settings_cache()
    net.reset_http_client()
    yield
    invalidate_default_settings_cache()
    net.reset_http_client()


@dataclass
class FakeGitlab:
    """Routes artifact requests by ``(project_id, job_name)`` and records them."""

    routes: Dict[Tuple[str, str], Union[httpx.Response, ResponseFactory]] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)

    def add(self, project_id: str, job_name: str, response: Union[httpx.Response, ResponseFactory]) -> None:
        self.routes[(project_id, job_name)] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        segments = request.url.path.split("/")
        project_id = "/".join(segments[4:-4])
        key = (project_id, request.url.params.get("job", ""))
        route = self.routes.get(key)
        if route is None:
            return httpx.Response(404, json={"message": "404 Not found"})
        if callable(route):
            return route(request)
        return route

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_gitlab() -> FakeGitlab:
    return FakeGitlab()


@pytest.fixture
def gitlab_client(fake_gitlab):
    client = fake_gitlab.client()
    yield client
    client.close()


@pytest.fixture
def settings() -> GitlabArtifactSettings:
    return load_settings({"apiBase": API_BASE, "gitlabApiToken": TOKEN})


@pytest.fixture
def artifact_zip() -> bytes:
    return build_zip_archive(
        {
            "index.html": "<h1>API documentation</h1>",
            "assets/": b"",
            "assets/style.css": "body { margin: 0; }",
        }
    )


@pytest.fixture
def link_markdown() -> str:
    return (FIXTURES_DIR / "link.md").read_text(encoding="utf-8")

