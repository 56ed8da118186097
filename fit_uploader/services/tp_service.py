"""TrainingPeaks service for uploading workout files."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from fit_uploader.config import DEFAULT_API_BASE, DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

UPLOAD_CLIENT = "TP Web App"
UPLOAD_PATH = "/fitness/v6/athletes/{athlete_id}/workouts/filedata"


class UploadOutcome(Enum):
    """Outcome of processing a single file."""

    UPLOADED = "uploaded"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadPayload:
    """Request body for a single workout file upload."""

    file_name: str
    encoded_content: str
    athlete_id: int
    upload_client: str = UPLOAD_CLIENT

    def to_json(self) -> dict[str, Any]:
        """Build the JSON document sent to the upload endpoint."""
        return {
            "workoutDay": None,
            "data": self.encoded_content,
            "fileName": self.file_name,
            "uploadClient": self.upload_client,
        }


@dataclass
class UploadResult:
    """Result of a single upload attempt."""

    outcome: UploadOutcome
    file_name: str
    status_code: int | None = None
    message: str = ""

    @property
    def success(self) -> bool:
        """Whether the server accepted the file."""
        return self.outcome == UploadOutcome.UPLOADED


def build_upload_url(api_base: str, athlete_id: int) -> str:
    """Build the file upload URL for an athlete."""
    return api_base.rstrip("/") + UPLOAD_PATH.format(athlete_id=athlete_id)


def create_client(
    api_base: str = DEFAULT_API_BASE,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the HTTP client shared by all uploads of a run.

    Args:
        api_base: Base URL of the upload API
        timeout: Per-request timeout in seconds
        transport: Optional transport override (used by tests)

    Returns:
        Configured async HTTP client
    """
    return httpx.AsyncClient(base_url=api_base, timeout=timeout, transport=transport)


async def upload_workout(
    client: httpx.AsyncClient,
    payload: UploadPayload,
    auth_token: str,
) -> UploadResult:
    """Upload one encoded workout file.

    A non-2xx response or a transport error is returned as a result, never raised.

    Args:
        client: Shared HTTP client
        payload: Encoded file and its metadata
        auth_token: Bearer token for the Authorization header

    Returns:
        UploadResult describing what happened
    """
    url = build_upload_url(str(client.base_url), payload.athlete_id)
    headers = {
        "Authorization": f"Bearer {auth_token}",
        "Content-Type": "application/json",
    }

    try:
        response = await client.post(url, json=payload.to_json(), headers=headers)
    except httpx.HTTPError as e:
        logger.debug("Upload request for %s failed", payload.file_name, exc_info=True)
        return UploadResult(
            outcome=UploadOutcome.FAILED,
            file_name=payload.file_name,
            message=str(e) or e.__class__.__name__,
        )

    if response.is_success:
        return UploadResult(
            outcome=UploadOutcome.UPLOADED,
            file_name=payload.file_name,
            status_code=response.status_code,
        )

    return UploadResult(
        outcome=UploadOutcome.REJECTED,
        file_name=payload.file_name,
        status_code=response.status_code,
        message=response.text,
    )
