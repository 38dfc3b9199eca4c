from __future__ import annotations

import pytest

from paper_ingest import gate as gate_module
from paper_ingest.exceptions import ProcessingBusyError
from paper_ingest.gate import NullGate, SingleFlightGate, reset_processing_status


def test_second_acquire_is_rejected_until_release() -> None:
    gate = SingleFlightGate()

    assert gate.try_acquire() is True
    assert gate.try_acquire() is False
    gate.release()
    assert gate.try_acquire() is True


def test_release_is_idempotent() -> None:
    gate = SingleFlightGate()
    gate.try_acquire("upload-1")

    gate.release("upload-1")
    gate.release("upload-1")
    gate.release()

    assert gate.is_busy is False


def test_active_requests_track_start_time() -> None:
    gate = SingleFlightGate()
    gate.try_acquire("upload-1")

    active = gate.active_requests()

    assert list(active) == ["upload-1"]
    assert active["upload-1"] > 0
    gate.release("upload-1")
    assert gate.active_requests() == {}


def test_hold_rejects_competing_upload_with_busy_error() -> None:
    gate = SingleFlightGate()

    with gate.hold("upload-1"):
        with pytest.raises(ProcessingBusyError) as exc_info:
            with gate.hold("upload-2"):
                pass
        assert exc_info.value.status_code == 429
        assert "Another upload is currently being processed" in str(exc_info.value)

    assert gate.is_busy is False


def test_hold_releases_on_error() -> None:
    gate = SingleFlightGate()

    with pytest.raises(RuntimeError):
        with gate.hold():
            raise RuntimeError("question generation failed")

    assert gate.try_acquire() is True


def test_reset_processing_status_releases_default_gate() -> None:
    assert gate_module.default_gate.try_acquire("upload-1") is True

    reset_processing_status()
    reset_processing_status()

    assert gate_module.default_gate.is_busy is False


def test_null_gate_never_blocks() -> None:
    gate = NullGate()

    assert gate.try_acquire() is True
    assert gate.try_acquire() is True
    gate.release()
    assert gate.is_busy is False
