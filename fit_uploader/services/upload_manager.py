"""Upload manager for classifying FIT files and uploading workouts."""

import asyncio
import logging
import os
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import Executor, ProcessPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from fit_uploader.config import get_settings
from fit_uploader.services import fit_service, tp_service
from fit_uploader.services.log_service import get_log_service
from fit_uploader.services.progress import ProgressReporter
from fit_uploader.services.tp_service import UploadOutcome, UploadPayload
from fit_uploader.services.utils import format_duration, format_file_size

logger = logging.getLogger(__name__)

SKIP_REASON_NOT_WORKOUT = "No workout records"


class DirectoryEnumerationError(Exception):
    """Raised when the source directory cannot be listed."""


def _is_workout_worker(local_path: str) -> bool | str:
    """Worker function for ProcessPoolExecutor — must be top-level for pickling.

    Returns:
        bool on success, or error message string on failure.
    """
    try:
        return fit_service.is_workout(local_path)
    except Exception as e:
        return str(e)


def scan_directory(directory: str | Path) -> list[Path]:
    """List the FIT files directly inside a directory.

    Raises:
        DirectoryEnumerationError: If the directory cannot be listed
    """
    try:
        entries = sorted(Path(directory).iterdir())
    except OSError as e:
        raise DirectoryEnumerationError(f"Cannot list {directory}: {e}") from e
    return [p for p in entries if fit_service.is_fit_file(p) and p.is_file()]


class UploadStatus(Enum):
    """Status of a file upload."""

    PENDING = "pending"
    CLASSIFYING = "classifying"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class FileUploadState:
    """State of a single file in an upload job."""

    filename: str
    local_path: str
    file_size: int
    status: UploadStatus = UploadStatus.PENDING
    outcome: UploadOutcome | None = None
    is_workout: bool | None = None
    status_code: int | None = None
    error_message: str = ""
    upload_started_at: datetime | None = None
    upload_completed_at: datetime | None = None

    @property
    def upload_duration_seconds(self) -> float | None:
        """Calculate upload duration in seconds."""
        if self.upload_started_at and self.upload_completed_at:
            return (self.upload_completed_at - self.upload_started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "filename": self.filename,
            "local_path": self.local_path,
            "file_size": self.file_size,
            "file_size_formatted": format_file_size(self.file_size),
            "status": self.status.value,
            "outcome": self.outcome.value if self.outcome else None,
            "is_workout": self.is_workout,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "upload_started_at": (
                self.upload_started_at.isoformat() if self.upload_started_at else None
            ),
            "upload_completed_at": (
                self.upload_completed_at.isoformat() if self.upload_completed_at else None
            ),
            "upload_duration_seconds": self.upload_duration_seconds,
        }


@dataclass
class UploadJob:
    """Represents one run over a source directory."""

    job_id: str
    source_dir: str = ""
    files: list[FileUploadState] = field(default_factory=list)
    status: UploadStatus = UploadStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def total_bytes(self) -> int:
        """Total bytes across all files."""
        return sum(f.file_size for f in self.files)

    def _count_outcome(self, outcome: UploadOutcome) -> int:
        return sum(1 for f in self.files if f.outcome == outcome)

    @property
    def files_completed(self) -> int:
        """Number of files that reached a final state."""
        return sum(
            1
            for f in self.files
            if f.status in (UploadStatus.COMPLETED, UploadStatus.SKIPPED, UploadStatus.FAILED)
        )

    @property
    def files_uploaded(self) -> int:
        """Number of files accepted by the server."""
        return self._count_outcome(UploadOutcome.UPLOADED)

    @property
    def files_skipped(self) -> int:
        """Number of files without workout records."""
        return self._count_outcome(UploadOutcome.SKIPPED)

    @property
    def files_rejected(self) -> int:
        """Number of files the server answered with a non-2xx status."""
        return self._count_outcome(UploadOutcome.REJECTED)

    @property
    def files_failed(self) -> int:
        """Number of files that could not be decoded, read or sent."""
        return self._count_outcome(UploadOutcome.FAILED)

    @property
    def total_duration_seconds(self) -> float | None:
        """Run duration from start to completion."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def resolve_final_status(self) -> None:
        """Set job status from the file outcomes."""
        if all(f.status in (UploadStatus.COMPLETED, UploadStatus.SKIPPED) for f in self.files):
            self.status = UploadStatus.COMPLETED
        elif any(f.status == UploadStatus.COMPLETED for f in self.files):
            self.status = UploadStatus.COMPLETED  # Partial success
        else:
            self.status = UploadStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        duration = self.total_duration_seconds
        return {
            "job_id": self.job_id,
            "source_dir": self.source_dir,
            "status": self.status.value,
            "files": [f.to_dict() for f in self.files],
            "total_files": len(self.files),
            "files_completed": self.files_completed,
            "files_uploaded": self.files_uploaded,
            "files_skipped": self.files_skipped,
            "files_rejected": self.files_rejected,
            "files_failed": self.files_failed,
            "total_bytes": self.total_bytes,
            "total_bytes_formatted": format_file_size(self.total_bytes),
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_seconds": duration,
            "total_duration_formatted": format_duration(duration) if duration else None,
        }


class UploadManager:
    """Runs the classify-and-upload pipeline over a directory of FIT files."""

    def __init__(
        self,
        max_workers: int | None = None,
        cpu_workers: int | None = None,
        cpu_executor_factory: Callable[..., Executor] = ProcessPoolExecutor,
        progress_factory: Callable[[int], ProgressReporter] | None = None,
        api_base: str | None = None,
        http_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.max_workers = max_workers or settings.parallelism
        self.cpu_workers = cpu_workers or max(1, (os.cpu_count() or 4) - 1)
        self.cpu_executor_factory = cpu_executor_factory
        self.progress_factory = progress_factory or ProgressReporter
        self.api_base = api_base or settings.api_base
        self.http_timeout = http_timeout or settings.http_timeout
        self.transport = transport

    def create_job(self, file_paths: list[str], source_dir: str = "") -> UploadJob:
        """Create a new upload job with the specified files.

        Args:
            file_paths: List of local file paths to process
            source_dir: Directory the files were listed from

        Returns:
            The created UploadJob
        """
        job_id = str(uuid.uuid4())
        job = UploadJob(job_id=job_id, source_dir=source_dir)

        for path_str in file_paths:
            path = Path(path_str)
            try:
                file_size = path.stat().st_size
            except OSError:
                file_size = 0
            job.files.append(
                FileUploadState(
                    filename=path.name,
                    local_path=str(path.absolute()),
                    file_size=file_size,
                )
            )

        log = get_log_service()
        log.info(
            "upload",
            "upload_job_created",
            f"Found {len(job.files)} FIT files in {source_dir or 'file list'}",
            {
                "job_id": job_id,
                "source_dir": source_dir,
                "total_files": len(job.files),
                "total_bytes": job.total_bytes,
            },
        )

        return job

    async def run(
        self,
        directory: str | Path,
        auth_token: str,
        athlete_id: int,
        concurrency_limit: int | None = None,
    ) -> UploadJob:
        """Classify every FIT file in a directory and upload the workouts.

        Args:
            directory: Directory to scan (non-recursive)
            auth_token: Bearer token for the upload API
            athlete_id: Athlete the workouts belong to
            concurrency_limit: Maximum files in flight, defaults to max_workers

        Returns:
            The finished UploadJob

        Raises:
            DirectoryEnumerationError: If the directory cannot be listed
        """
        limit = self.max_workers if concurrency_limit is None else concurrency_limit
        if limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1, got {limit}")

        fit_files = scan_directory(directory)
        job = self.create_job([str(p) for p in fit_files], source_dir=str(directory))
        job.status = UploadStatus.UPLOADING
        job.started_at = datetime.now(UTC)

        semaphore = asyncio.Semaphore(limit)
        progress = self.progress_factory(len(job.files))

        try:
            with self.cpu_executor_factory(max_workers=self.cpu_workers) as cpu_pool:
                async with tp_service.create_client(
                    self.api_base, self.http_timeout, self.transport
                ) as client:
                    await asyncio.gather(
                        *(
                            self._process_file(
                                job,
                                fs,
                                client,
                                cpu_pool,
                                semaphore,
                                progress,
                                auth_token,
                                athlete_id,
                            )
                            for fs in job.files
                        )
                    )
        finally:
            progress.close()

        self._finish_job(job)
        return job

    def run_sync(
        self,
        directory: str | Path,
        auth_token: str,
        athlete_id: int,
        concurrency_limit: int | None = None,
    ) -> UploadJob:
        """Blocking wrapper around run()."""
        return asyncio.run(self.run(directory, auth_token, athlete_id, concurrency_limit))

    async def _process_file(
        self,
        job: UploadJob,
        fs: FileUploadState,
        client: httpx.AsyncClient,
        cpu_pool: Executor,
        semaphore: asyncio.Semaphore,
        progress: ProgressReporter,
        auth_token: str,
        athlete_id: int,
    ) -> None:
        """Drive one file through the pipeline; never raises for per-file errors."""
        try:
            async with semaphore:
                await self._classify_and_upload(job, fs, client, cpu_pool, auth_token, athlete_id)
        except Exception as e:
            try:
                self._mark_failed(job, fs, str(e), "file_upload_failed")
            except Exception:
                logger.exception("Failed to record failure for %s", fs.filename)
        finally:
            progress.increment()

    async def _classify_and_upload(
        self,
        job: UploadJob,
        fs: FileUploadState,
        client: httpx.AsyncClient,
        cpu_pool: Executor,
        auth_token: str,
        athlete_id: int,
    ) -> None:
        log = get_log_service()
        loop = asyncio.get_running_loop()

        # Phase 1: FIT decoding (CPU-bound) on the worker pool
        fs.status = UploadStatus.CLASSIFYING
        result = await loop.run_in_executor(cpu_pool, _is_workout_worker, fs.local_path)

        if isinstance(result, str):
            self._mark_failed(job, fs, result, "file_analysis_failed")
            return

        fs.is_workout = result
        log.info(
            "analysis",
            "file_classified",
            f"Classified {fs.filename}: {'workout' if result else 'not a workout'}",
            {"job_id": job.job_id, "filename": fs.filename, "is_workout": result},
        )

        if not result:
            fs.status = UploadStatus.SKIPPED
            fs.outcome = UploadOutcome.SKIPPED
            fs.error_message = SKIP_REASON_NOT_WORKOUT
            log.info(
                "upload",
                "file_upload_skipped",
                f"Skipped {fs.filename}: {SKIP_REASON_NOT_WORKOUT.lower()}",
                {"job_id": job.job_id, "filename": fs.filename, "reason": "not_workout"},
            )
            return

        # Phase 2: encode and upload (I/O-bound) on the event loop
        try:
            encoded = await asyncio.to_thread(fit_service.encode_file, fs.local_path)
        except fit_service.EncodeError as e:
            self._mark_failed(job, fs, str(e), "file_upload_failed")
            return

        payload = UploadPayload(
            file_name=fs.filename, encoded_content=encoded, athlete_id=athlete_id
        )

        fs.status = UploadStatus.UPLOADING
        fs.upload_started_at = datetime.now(UTC)
        log.info(
            "upload",
            "file_upload_started",
            f"Uploading FIT file: {fs.filename}",
            {"job_id": job.job_id, "filename": fs.filename, "file_size": fs.file_size},
        )

        upload_result = await tp_service.upload_workout(client, payload, auth_token)

        fs.upload_completed_at = datetime.now(UTC)
        fs.outcome = upload_result.outcome
        fs.status_code = upload_result.status_code

        if upload_result.success:
            fs.status = UploadStatus.COMPLETED
            log.info(
                "upload",
                "file_upload_completed",
                f"Successfully uploaded FIT file: {fs.filename}",
                {
                    "job_id": job.job_id,
                    "filename": fs.filename,
                    "status_code": fs.status_code,
                    "upload_duration_seconds": fs.upload_duration_seconds,
                },
            )
        else:
            fs.status = UploadStatus.FAILED
            fs.error_message = upload_result.message
            log.error(
                "upload",
                "file_upload_failed",
                f"Failed to upload FIT file: {fs.filename}, {fs.error_message}",
                {
                    "job_id": job.job_id,
                    "filename": fs.filename,
                    "outcome": upload_result.outcome.value,
                    "status_code": fs.status_code,
                    "error": fs.error_message,
                },
            )

    def _mark_failed(self, job: UploadJob, fs: FileUploadState, error: str, event: str) -> None:
        fs.status = UploadStatus.FAILED
        fs.outcome = UploadOutcome.FAILED
        fs.error_message = error
        category = "analysis" if event == "file_analysis_failed" else "upload"
        get_log_service().error(
            category,
            event,
            f"Failed to process {fs.filename}: {error}",
            {"job_id": job.job_id, "filename": fs.filename, "error": error},
        )

    def _finish_job(self, job: UploadJob) -> None:
        """Set the final status, log the run summary and save it."""
        log = get_log_service()

        with job.lock:
            job.completed_at = datetime.now(UTC)
            job.resolve_final_status()

        summary = {
            "job_id": job.job_id,
            "status": job.status.value,
            "uploaded": job.files_uploaded,
            "skipped": job.files_skipped,
            "rejected": job.files_rejected,
            "failed": job.files_failed,
            "duration_seconds": job.total_duration_seconds,
        }

        log.info(
            "upload",
            "upload_job_completed",
            f"Upload run completed: {job.files_uploaded} uploaded, {job.files_skipped} skipped, "
            f"{job.files_rejected} rejected, {job.files_failed} failed",
            summary,
        )

        # Save per-run JSONL summary
        try:
            completed_at = job.completed_at or datetime.now(UTC)
            log.save_job_jsonl(
                job.job_id,
                {
                    "timestamp": completed_at.isoformat(),
                    "event": "upload_job_completed",
                    **job.to_dict(),
                },
                completed_at,
            )
        except Exception:
            logger.warning("Failed to save job JSONL summary", exc_info=True)
