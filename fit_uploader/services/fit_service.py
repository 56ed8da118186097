"""FIT service for classifying FIT files and encoding them for upload."""

import base64
from enum import Enum
from pathlib import Path

from fitparse import FitFile, FitParseError


class DecodeError(Exception):
    """Raised when a file cannot be decoded as a FIT file."""


class EncodeError(OSError):
    """Raised when a file cannot be read for encoding."""


class RecordKind(str, Enum):
    """Semantic category of a decoded FIT message."""

    WORKOUT = "workout"
    SESSION = "session"
    ACTIVITY = "activity"
    WORKOUT_SESSION = "workout_session"
    OTHER = "other"

    @classmethod
    def from_message_name(cls, name: str | None) -> "RecordKind":
        """Map a fitparse message name onto a kind; unknown names become OTHER."""
        if not name:
            return cls.OTHER
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


# Message kinds that mark a file as a recorded workout
WORKOUT_KINDS: frozenset[RecordKind] = frozenset(
    {
        RecordKind.WORKOUT,
        RecordKind.SESSION,
        RecordKind.ACTIVITY,
        RecordKind.WORKOUT_SESSION,
    }
)

FIT_EXTENSION = ".fit"


def is_fit_file(path: str | Path) -> bool:
    """Check whether a path carries the FIT extension (case-insensitive)."""
    return Path(path).suffix.lower() == FIT_EXTENSION


def decode_record_kinds(path: str | Path) -> list[RecordKind]:
    """Decode a FIT file into the kinds of its data messages, in file order.

    Raises:
        DecodeError: If the file cannot be opened or is not valid FIT data
    """
    try:
        with FitFile(str(path)) as fit_file:
            return [RecordKind.from_message_name(msg.name) for msg in fit_file.get_messages()]
    except (FitParseError, OSError) as e:
        raise DecodeError(f"Cannot decode {Path(path).name}: {e}") from e


def is_workout(path: str | Path) -> bool:
    """Return True if the file holds at least one workout-like message.

    Decoding is CPU-heavy; callers on an event loop should run this in an executor.

    Raises:
        DecodeError: If the file cannot be decoded
    """
    return any(kind in WORKOUT_KINDS for kind in decode_record_kinds(path))


def encode_file(path: str | Path) -> str:
    """Read the whole file and return its standard base64 encoding.

    Raises:
        EncodeError: If the file cannot be read
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise EncodeError(f"Cannot read {Path(path).name}: {e}") from e
    return base64.b64encode(data).decode("ascii")
