"""Tests for the FIT service module."""

import base64
import struct
from pathlib import Path
from unittest.mock import patch

import pytest
from fitparse.profile import MESSAGE_TYPES
from fitparse.records import Crc

from fit_uploader.services import fit_service
from fit_uploader.services.fit_service import (
    WORKOUT_KINDS,
    DecodeError,
    EncodeError,
    RecordKind,
)

# Global message numbers from the FIT profile
FILE_ID = 0
SESSION = 18
RECORD = 20
WORKOUT = 26
ACTIVITY = 34
WORKOUT_SESSION = 158


def _fit_bytes(*mesg_nums: int) -> bytes:
    """Build a minimal FIT file with one data message per global message number."""
    records = b""
    for local_num, mesg_num in enumerate(mesg_nums):
        # Definition: little endian, one undefined single-byte field
        records += struct.pack("<BBBHB", 0x40 | local_num, 0, 0, mesg_num, 1)
        records += struct.pack("<BBB", 249, 1, 0x0D)
        records += struct.pack("<BB", local_num, 0)
    header = struct.pack("<BBHI4sH", 14, 0x10, 2093, len(records), b".FIT", 0)
    data = header + records
    return data + struct.pack("<H", Crc.calculate(data))


class TestRecordKind:
    """Tests for RecordKind mapping."""

    def test_known_message_names(self) -> None:
        """Test that workout-like fitparse message names map to their kinds."""
        assert RecordKind.from_message_name("workout") == RecordKind.WORKOUT
        assert RecordKind.from_message_name("session") == RecordKind.SESSION
        assert RecordKind.from_message_name("activity") == RecordKind.ACTIVITY
        assert RecordKind.from_message_name("workout_session") == RecordKind.WORKOUT_SESSION

    @pytest.mark.parametrize("name", ["record", "file_id", "device_info", "unknown_233", "", None])
    def test_other_message_names(self, name: str | None) -> None:
        """Test that everything else maps to OTHER."""
        assert RecordKind.from_message_name(name) == RecordKind.OTHER

    def test_workout_kinds_membership(self) -> None:
        """Test the fixed set of workout-like kinds."""
        assert WORKOUT_KINDS == {
            RecordKind.WORKOUT,
            RecordKind.SESSION,
            RecordKind.ACTIVITY,
            RecordKind.WORKOUT_SESSION,
        }
        assert RecordKind.OTHER not in WORKOUT_KINDS
        assert isinstance(WORKOUT_KINDS, frozenset)


class TestIsFitFile:
    """Tests for the extension filter."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("ride.fit", True),
            ("RIDE.FIT", True),
            ("ride.fit.bak", False),
            ("ride.txt", False),
            ("fit", False),
        ],
    )
    def test_is_fit_file(self, name: str, expected: bool) -> None:
        """Test extension matching."""
        assert fit_service.is_fit_file(name) is expected


@pytest.mark.usefixtures("fake_fitparse")
class TestClassification:
    """Tests for decode_record_kinds and is_workout."""

    def test_decode_record_kinds(self, tmp_path: Path) -> None:
        """Test that message names are decoded in file order."""
        path = tmp_path / "a.fit"
        path.write_text("file_id record session")

        kinds = fit_service.decode_record_kinds(path)

        assert kinds == [RecordKind.OTHER, RecordKind.OTHER, RecordKind.SESSION]

    @pytest.mark.parametrize("name", ["workout", "session", "activity", "workout_session"])
    def test_is_workout_with_single_workout_kind(self, tmp_path: Path, name: str) -> None:
        """Test that one workout-like message is enough."""
        path = tmp_path / "a.fit"
        path.write_text(f"file_id record record {name}")

        assert fit_service.is_workout(path) is True

    def test_is_workout_without_workout_kind(self, tmp_path: Path) -> None:
        """Test a file holding only non-workout messages."""
        path = tmp_path / "settings.fit"
        path.write_text("file_id device_settings user_profile")

        assert fit_service.is_workout(path) is False

    def test_is_workout_empty_file(self, tmp_path: Path) -> None:
        """Test a file without any messages."""
        path = tmp_path / "empty.fit"
        path.write_text("")

        assert fit_service.is_workout(path) is False

    def test_decode_error_on_invalid_file(self, tmp_path: Path) -> None:
        """Test that parse failures are raised as DecodeError."""
        path = tmp_path / "broken.fit"
        path.write_bytes(b"BAD HEADER")

        with pytest.raises(DecodeError, match="broken.fit"):
            fit_service.is_workout(path)

    def test_decode_error_on_missing_file(self, tmp_path: Path) -> None:
        """Test that open failures are raised as DecodeError."""
        with pytest.raises(DecodeError):
            fit_service.is_workout(tmp_path / "missing.fit")


class TestRealDecoder:
    """Tests against the real fitparse decoder."""

    def test_garbage_is_decode_error(self, tmp_path: Path) -> None:
        """Test that non-FIT bytes do not decode."""
        path = tmp_path / "garbage.fit"
        path.write_bytes(b"this is not a fit file")

        with pytest.raises(DecodeError):
            fit_service.decode_record_kinds(path)

    def test_session_message_is_workout(self, tmp_path: Path) -> None:
        """Test that a real FIT stream with a session message is a workout."""
        path = tmp_path / "ride.fit"
        path.write_bytes(_fit_bytes(FILE_ID, SESSION))

        assert fit_service.decode_record_kinds(path) == [RecordKind.OTHER, RecordKind.SESSION]
        assert fit_service.is_workout(path) is True

    @pytest.mark.parametrize("mesg_num", [WORKOUT, ACTIVITY, WORKOUT_SESSION])
    def test_other_workout_messages(self, tmp_path: Path, mesg_num: int) -> None:
        """Test each remaining workout-like message through the real decoder."""
        path = tmp_path / "a.fit"
        path.write_bytes(_fit_bytes(FILE_ID, mesg_num))

        assert fit_service.is_workout(path) is True

    def test_records_only_is_not_workout(self, tmp_path: Path) -> None:
        """Test that a real FIT stream without workout messages is skipped."""
        path = tmp_path / "settings.fit"
        path.write_bytes(_fit_bytes(FILE_ID, RECORD))

        assert fit_service.is_workout(path) is False

    def test_corrupt_crc_is_decode_error(self, tmp_path: Path) -> None:
        """Test that a damaged checksum fails decoding."""
        data = bytearray(_fit_bytes(FILE_ID, SESSION))
        data[-1] ^= 0xFF
        path = tmp_path / "a.fit"
        path.write_bytes(bytes(data))

        with pytest.raises(DecodeError):
            fit_service.decode_record_kinds(path)

    def test_workout_kinds_match_profile_names(self) -> None:
        """Test that the workout kinds are the decoder's own message names."""
        names = {MESSAGE_TYPES[n].name for n in (WORKOUT, SESSION, ACTIVITY, WORKOUT_SESSION)}
        assert names == {kind.value for kind in WORKOUT_KINDS}

    def test_file_is_closed_after_decode(self, tmp_path: Path) -> None:
        """Test that decode uses FitFile as a context manager."""
        path = tmp_path / "a.fit"
        path.write_text("session")

        with patch("fit_uploader.services.fit_service.FitFile") as mock_fit:
            fit_file = mock_fit.return_value.__enter__.return_value
            fit_file.get_messages.return_value = []

            assert fit_service.decode_record_kinds(path) == []

        mock_fit.assert_called_once_with(str(path))
        mock_fit.return_value.__exit__.assert_called_once()


class TestEncodeFile:
    """Tests for base64 encoding."""

    def test_encode_round_trip(self, tmp_path: Path) -> None:
        """Test that decoding the output reproduces the exact bytes."""
        data = bytes(range(256)) * 4 + b"\x00\x0e\x10"
        path = tmp_path / "a.fit"
        path.write_bytes(data)

        encoded = fit_service.encode_file(path)

        assert encoded == base64.b64encode(data).decode("ascii")
        assert base64.b64decode(encoded) == data

    def test_encode_empty_file(self, tmp_path: Path) -> None:
        """Test encoding an empty file."""
        path = tmp_path / "empty.fit"
        path.write_bytes(b"")

        assert fit_service.encode_file(path) == ""

    def test_encode_missing_file(self, tmp_path: Path) -> None:
        """Test that read failures raise EncodeError."""
        with pytest.raises(EncodeError, match="missing.fit"):
            fit_service.encode_file(tmp_path / "missing.fit")

    def test_encode_error_is_os_error(self) -> None:
        """Test that EncodeError can be handled as an OSError."""
        assert issubclass(EncodeError, OSError)
