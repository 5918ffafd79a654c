"""End-to-end pull tests through run_pull with network and verifier faked."""

from __future__ import annotations

import errno
import os
import signal
from pathlib import Path
from unittest import mock

import pytest

from sifpull.cache import LibraryCache
from sifpull.config import SifpullConfig
from sifpull.errors import (
    DestinationExistsError,
    FilesystemError,
    IntegrityMismatchError,
    PullInterruptedError,
    TrustDeclinedError,
)
from sifpull.pull import build_context, run_pull
from sifpull.request import PullRequest, TrustDecision
from sifpull.uri import resolve_reference

from conftest import ScriptedPrompt, StubVerifier, sif_hash

PAYLOAD = b"SIF image payload"


@pytest.fixture
def config() -> SifpullConfig:
    return SifpullConfig()


def _request(tmp_path: Path, raw: str = "library://alpine:latest", **kwargs) -> PullRequest:
    return PullRequest(
        reference=resolve_reference(raw),
        destination_name=str(tmp_path / kwargs.pop("dest", "alpine_latest")),
        **kwargs,
    )


class TestLibraryPull:
    """Test the library flow: lookup, cache, copy, trust gate."""

    def test_cache_miss_downloads_and_verifies(self, v, tmp_path, config, fake_library):
        client = fake_library(PAYLOAD)
        verifier = StubVerifier(True)
        request = _request(tmp_path)

        outcome = run_pull(request, config, prompt=ScriptedPrompt("n\n"), verifier=verifier, v=v)

        assert outcome.destination_path == request.destination
        assert outcome.trust_decision is TrustDecision.VERIFIED
        assert outcome.cache_hit is False
        assert outcome.bytes_transferred == len(PAYLOAD)
        assert request.destination.read_bytes() == PAYLOAD
        assert client.downloads == ["library://alpine:latest"]
        assert verifier.calls == [request.destination]
        assert LibraryCache(config.cache_dir).exists(sif_hash(PAYLOAD), "alpine_latest")

    def test_cache_hit_skips_download(self, v, tmp_path, config, fake_library):
        client = fake_library(PAYLOAD)
        run_pull(_request(tmp_path, dest="first"), config, verifier=StubVerifier(True), v=v)

        outcome = run_pull(_request(tmp_path, dest="second"), config, verifier=StubVerifier(True), v=v)

        assert outcome.cache_hit is True
        assert outcome.bytes_transferred == 0
        assert len(client.downloads) == 1
        assert len(client.lookups) == 2
        assert (tmp_path / "second").read_bytes() == PAYLOAD

    def test_untagged_reference_uses_library(self, v, tmp_path, config, fake_library):
        client = fake_library(PAYLOAD)
        run_pull(_request(tmp_path, "alpine"), config, verifier=StubVerifier(True), v=v)
        assert client.lookups == ["alpine"]

    def test_hash_mismatch(self, v, tmp_path, config, fake_library):
        declared = sif_hash(b"expected content")
        fake_library(PAYLOAD, declared_hash=declared)
        request = _request(tmp_path)

        with pytest.raises(IntegrityMismatchError):
            run_pull(request, config, verifier=StubVerifier(True), v=v)

        assert not LibraryCache(config.cache_dir).exists(declared, "alpine_latest")
        assert not request.destination.exists()

    def test_existing_destination_refused_before_network(self, v, tmp_path, config, fake_library):
        client = fake_library(PAYLOAD)
        request = _request(tmp_path)
        request.destination.write_bytes(b"old image")

        with pytest.raises(DestinationExistsError):
            run_pull(request, config, verifier=StubVerifier(True), v=v)

        assert client.lookups == []
        assert request.destination.read_bytes() == b"old image"

    def test_force_overwrites(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        request = _request(tmp_path, overwrite_allowed=True)
        request.destination.write_bytes(b"an older, longer image file")

        run_pull(request, config, verifier=StubVerifier(True), v=v)

        assert request.destination.read_bytes() == PAYLOAD

    def test_allow_unauthenticated_never_prompts(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        verifier = StubVerifier(False)
        prompt = ScriptedPrompt("n\n")

        outcome = run_pull(_request(tmp_path, unauthenticated_allowed=True), config,
                           prompt=prompt, verifier=verifier, v=v)

        assert outcome.trust_decision is TrustDecision.SKIPPED
        assert verifier.calls == []
        assert prompt.questions == []

    def test_empty_library_uri_skips_verification(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        verifier = StubVerifier(False)
        outcome = run_pull(_request(tmp_path, library_base_uri=""), config, verifier=verifier, v=v)
        assert outcome.trust_decision is TrustDecision.SKIPPED
        assert verifier.calls == []

    def test_unsigned_accepted(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        request = _request(tmp_path)
        outcome = run_pull(request, config, prompt=ScriptedPrompt("y\n"), verifier=StubVerifier(False), v=v)
        assert outcome.trust_decision is TrustDecision.UNSIGNED_ACCEPTED
        assert request.destination.exists()

    def test_unsigned_declined(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        request = _request(tmp_path)

        with pytest.raises(TrustDeclinedError) as exc_info:
            run_pull(request, config, prompt=ScriptedPrompt("n\n"), verifier=StubVerifier(False), v=v)

        assert exc_info.value.exit_code == 3
        assert not request.destination.exists()
        # the verified cache entry itself is kept
        assert LibraryCache(config.cache_dir).exists(sif_hash(PAYLOAD), "alpine_latest")

    def test_corrupt_cache_hit_redownloaded(self, v, tmp_path, fake_library):
        config_path = tmp_path / "config" / "config.yaml"
        config_path.parent.mkdir(parents=True)
        config_path.write_text("cache:\n  verify_on_hit: true\n")
        config = SifpullConfig(config_path)
        client = fake_library(PAYLOAD)

        run_pull(_request(tmp_path, dest="first"), config, verifier=StubVerifier(True), v=v)
        entry = LibraryCache(config.cache_dir).entry(sif_hash(PAYLOAD), "alpine_latest")
        entry.local_path.write_bytes(b"bit rot")

        outcome = run_pull(_request(tmp_path, dest="second"), config, verifier=StubVerifier(True), v=v)

        assert outcome.cache_hit is False
        assert len(client.downloads) == 2
        assert (tmp_path / "second").read_bytes() == PAYLOAD

    def test_copy_failure_removes_partial_destination(self, v, tmp_path, config, fake_library):
        fake_library(PAYLOAD)
        request = _request(tmp_path)

        def short_copy(fsrc, fdst):
            fdst.write(fsrc.read(4))
            raise OSError(errno.ENOSPC, "No space left on device")

        with mock.patch("sifpull.materialize.shutil.copyfileobj", side_effect=short_copy):
            with pytest.raises(FilesystemError):
                run_pull(request, config, verifier=StubVerifier(True), v=v)

        assert not request.destination.exists()
        assert not any(p.name.endswith(".part") for p in tmp_path.iterdir())
        # a retry without --force is not blocked by leftovers
        outcome = run_pull(request, config, verifier=StubVerifier(True), v=v)
        assert request.destination.read_bytes() == PAYLOAD
        assert outcome.cache_hit is True

    def test_interrupted_download(self, v, tmp_path, config, fake_library):
        client = fake_library(PAYLOAD)

        def interrupted(dest, ref, cancel=None):
            Path(dest).write_bytes(b"half")
            os.kill(os.getpid(), signal.SIGINT)

        client.download_image = interrupted
        request = _request(tmp_path)

        with pytest.raises(PullInterruptedError) as exc_info:
            run_pull(request, config, verifier=StubVerifier(True), v=v)

        assert exc_info.value.exit_code == 1
        assert not request.destination.exists()
        assert LibraryCache(config.cache_dir).entries() == []


def test_build_context_uses_config(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "keyserver: https://keys.example.com\n"
        "verify:\n  command: [apptainer, verify]\n  on_error: fail\n"
        "registry:\n  command: [/usr/local/bin/skopeo]\n"
        "network:\n  timeout: 5\n"
    )
    context = build_context(SifpullConfig(config_path), token="tok")

    assert context.trust_gate.fail_closed is True
    assert context.trust_gate.verifier.build_cmd("img") == [
        "apptainer", "verify", "--url", "https://keys.example.com", "img",
    ]
    assert context.trust_gate.verifier.token == "tok"
    assert context.registry_command == ["/usr/local/bin/skopeo"]
    assert context.timeout == 5.0
    assert context.cancel.cancelled is False
