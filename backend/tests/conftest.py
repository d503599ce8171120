import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="interview-trainer-tests-")
DB_PATH = os.path.join(_DB_DIR, "test.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"

import httpx
import pytest
from fastapi.testclient import TestClient

from deep_analysis import DeepAnalysisClient
from llm import ContentScorer
from main import app, get_orchestrator
from orchestrator import SessionOrchestrator


class FakeLLM:
    """Replays canned model replies and records every prompt it was sent."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return '{"score": 7, "question": "What would you do differently?"}'

    async def list_models(self):
        return [{"name": "models/fake-model", "display_name": "Fake Model"}]


class FakeDeepService:
    """In-process stand-in for the deep analysis HTTP service."""

    def __init__(self, analyze_body=None, status=200):
        self.analyze_body = analyze_body if analyze_body is not None else {
            "hireability_index": 72,
            "candidate_level": "Mid",
        }
        self.status = status
        self.error = None
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error(f"simulated {self.error.__name__}", request=request)
        if request.url.path == "/analyze":
            return httpx.Response(self.status, json=self.analyze_body)
        return httpx.Response(200, json={"status": "training started"})

    def paths(self):
        return [r.url.path for r in self.requests]

    def client(self) -> DeepAnalysisClient:
        return DeepAnalysisClient(
            base_url="http://deep-analysis.test",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def deep_service():
    return FakeDeepService()


@pytest.fixture
def orchestrator(llm, deep_service):
    return SessionOrchestrator(ContentScorer(llm), deep_service.client())


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    if os.path.exists(DB_PATH):
        os.remove(DB_PATH)
