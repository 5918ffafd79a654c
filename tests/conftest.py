"""Shared pytest fixtures for sifpull tests."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import pytest

from sifpull.bootstrap import init_sifpull
from sifpull.cache import LibraryCache
from sifpull.library import LibraryImage, library_path
from sifpull.signing import TrustGate, is_affirmative
from sifpull.transports.base import PullContext

SIFPULL_ENV_VARS = (
    "SIFPULL_LIBRARY", "SIFPULL_FORCE", "SIFPULL_ALLOW_UNAUTHENTICATED", "SIFPULL_NAME",
    "SIFPULL_TMPDIR", "SIFPULL_NOHTTPS", "SIFPULL_DOCKER_USERNAME", "SIFPULL_DOCKER_PASSWORD",
    "SIFPULL_DOCKER_LOGIN", "SIFPULL_LIBRARY_TOKEN",
)


def sif_hash(data: bytes) -> str:
    """Library-style content hash of an in-memory payload."""
    return "sha256." + hashlib.sha256(data).hexdigest()


@pytest.fixture(autouse=True)
def isolate_stateful(tmp_path: Path, monkeypatch):
    """Redirect SAF stateful root, config and cache to temp dirs.

    Prevents tests from reading or writing the real ~/.config/sifpull/ and
    ~/.cache/sifpull/. Also resets the bootstrap singleton between tests.
    """
    monkeypatch.setenv("STATEFUL_ROOT", str(tmp_path / "stateful"))
    monkeypatch.setenv("SIFPULL_CONFIG", str(tmp_path / "config" / "config.yaml"))
    monkeypatch.setenv("SIFPULL_CACHEDIR", str(tmp_path / "cache"))
    for name in SIFPULL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    import sifpull.bootstrap
    sifpull.bootstrap._variables = None
    yield
    sifpull.bootstrap._variables = None


@pytest.fixture
def v() -> Any:
    """Initialize sifpull and return the Variables instance.

    Uses WARNING log level to reduce test output noise.
    Resets the global _variables singleton for test isolation.
    """
    import sifpull.bootstrap
    sifpull.bootstrap._variables = None

    return init_sifpull(log_level="WARNING")


class FakeLibraryClient:
    """Stands in for LibraryClient without touching the network.

    Declares ``declared_hash`` (the payload's hash by default) and serves
    ``served`` bytes (the payload by default) on download.
    """

    def __init__(self, payload: bytes, declared_hash: str | None = None, served: bytes | None = None):
        self.payload = payload
        self.declared_hash = declared_hash or sif_hash(payload)
        self.served = payload if served is None else served
        self.lookups: list[str] = []
        self.downloads: list[str] = []

    def get_image(self, ref: str) -> LibraryImage:
        self.lookups.append(ref)
        return LibraryImage(path=library_path(ref), hash=self.declared_hash, size=len(self.payload))

    def download_image(self, dest, ref: str, cancel=None) -> int:
        self.downloads.append(ref)
        Path(dest).write_bytes(self.served)
        return len(self.served)


@pytest.fixture
def fake_library(monkeypatch):
    """Install a FakeLibraryClient in place of the library transport's client."""

    def install(payload: bytes = b"SIF image payload", **kwargs) -> FakeLibraryClient:
        client = FakeLibraryClient(payload, **kwargs)
        monkeypatch.setattr("sifpull.transports.library.LibraryClient", lambda *a, **kw: client)
        return client

    return install


class StubVerifier:
    """Signature verifier returning a fixed result (or raising it)."""

    def __init__(self, result: Any = True):
        self.result = result
        self.calls: list[Path] = []

    def is_signed(self, path) -> bool:
        self.calls.append(Path(path))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class ScriptedPrompt:
    """Trust prompt that answers with a fixed line and records questions."""

    def __init__(self, answer: str = "y\n"):
        self.answer = answer
        self.questions: list[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return is_affirmative(self.answer)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def make_context(cache_dir: Path):
    """Build a PullContext around a stub verifier and scripted prompt."""

    def build(signed: Any = True, answer: str = "y\n", **kwargs) -> PullContext:
        verifier = StubVerifier(signed)
        prompt = ScriptedPrompt(answer)
        gate = TrustGate(verifier, prompt=prompt, fail_closed=kwargs.pop("fail_closed", False))
        return PullContext(cache=LibraryCache(cache_dir), trust_gate=gate, **kwargs)

    return build
