"""Progress reporting for upload runs."""

import threading

from tqdm import tqdm

BAR_FORMAT = (
    "{desc} [{elapsed}] |{bar}| {percentage:3.0f}% {rate_fmt} {n_fmt}/{total_fmt} ({remaining})"
)


class ProgressReporter:
    """Counts completed files and renders a live bar.

    Safe to call from concurrent tasks and worker threads.
    """

    def __init__(self, total: int, disable: bool = False, desc: str = "FIT files") -> None:
        self.total = total
        self._completed = 0
        self._lock = threading.Lock()
        self._bar = tqdm(
            total=total,
            desc=desc,
            unit="file",
            bar_format=BAR_FORMAT,
            ascii=" >#",
            disable=disable,
        )

    @property
    def completed(self) -> int:
        """Number of files completed so far."""
        with self._lock:
            return self._completed

    def increment(self) -> None:
        """Record one completed file."""
        with self._lock:
            self._completed += 1
            self._bar.update(1)

    def close(self) -> None:
        """Stop rendering the bar."""
        with self._lock:
            self._bar.close()
