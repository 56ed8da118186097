"""Pytest configuration and fixtures for the fit_uploader tests."""

import json
from collections.abc import Callable, Generator, Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from fitparse import FitParseError

from fit_uploader import config
from fit_uploader.config import Settings
from fit_uploader.services import log_service
from fit_uploader.services.progress import ProgressReporter
from fit_uploader.services.upload_manager import UploadManager

TEST_API_BASE = "https://tp.test"

ENV_VARS = [
    config.ENV_AUTH_TOKEN,
    config.ENV_ATHLETE_ID,
    config.ENV_API_BASE,
    config.ENV_PARALLELISM,
    config.ENV_UPLOAD_FOLDER,
    config.ENV_LOG_DIR,
    config.ENV_HTTP_TIMEOUT,
]


class FakeFitFile:
    """Stand-in for fitparse.FitFile.

    Test files hold whitespace-separated message names instead of binary FIT data.
    Files starting with BAD fail like a corrupt header.
    """

    def __init__(self, path: str) -> None:
        data = Path(path).read_bytes()
        if data.startswith(b"BAD"):
            raise FitParseError("Invalid .FIT File Header")
        self.names = data.decode("latin-1").split()

    def __enter__(self) -> "FakeFitFile":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        pass

    def get_messages(self) -> Iterator[SimpleNamespace]:
        for name in self.names:
            yield SimpleNamespace(name=name)


class RecordingTransport:
    """Records upload requests and answers with a configurable status per file."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.bodies: list[dict[str, Any]] = []
        self.statuses: dict[str, int] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(request)
        self.bodies.append(body)
        status = self.statuses.get(body["fileName"], 200)
        if status >= 400:
            return httpx.Response(status, text=f"Rejected {body['fileName']}")
        return httpx.Response(status, json={"ok": True})

    @property
    def uploaded_names(self) -> list[str]:
        return [b["fileName"] for b in self.bodies]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Keep the user's environment and settings.json out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "SETTINGS_FILE", tmp_path / "no-settings.json")
    Settings._instance = None
    log_service._log_service = None
    yield
    Settings._instance = None
    log_service._log_service = None


@pytest.fixture
def fake_fitparse() -> Generator[type[FakeFitFile], None, None]:
    """Replace fitparse decoding with FakeFitFile."""
    with patch("fit_uploader.services.fit_service.FitFile", FakeFitFile):
        yield FakeFitFile


@pytest.fixture
def fit_dir(tmp_path: Path) -> Callable[[dict[str, str | bytes]], Path]:
    """Build a source directory from a {filename: content} mapping."""

    def build(files: dict[str, str | bytes]) -> Path:
        source = tmp_path / "activities"
        source.mkdir(exist_ok=True)
        for name, content in files.items():
            data = content.encode() if isinstance(content, str) else content
            (source / name).write_bytes(data)
        return source

    return build


@pytest.fixture
def recorder() -> RecordingTransport:
    """HTTP transport that records upload requests."""
    return RecordingTransport()


@pytest.fixture
def progress_reporters() -> list[ProgressReporter]:
    """Progress reporters created by managers built with make_manager."""
    return []


@pytest.fixture
def make_manager(
    recorder: RecordingTransport, progress_reporters: list[ProgressReporter]
) -> Callable[..., UploadManager]:
    """Build an UploadManager wired to the recording transport.

    Classification runs on a thread pool so patches apply inside the workers.
    """

    def progress_factory(total: int) -> ProgressReporter:
        reporter = ProgressReporter(total, disable=True)
        progress_reporters.append(reporter)
        return reporter

    def build(**kwargs: Any) -> UploadManager:
        options: dict[str, Any] = {
            "max_workers": 4,
            "cpu_workers": 2,
            "cpu_executor_factory": ThreadPoolExecutor,
            "progress_factory": progress_factory,
            "api_base": TEST_API_BASE,
            "transport": recorder.transport(),
        }
        options.update(kwargs)
        return UploadManager(**options)

    return build
