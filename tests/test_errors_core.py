from fastapi import HTTPException

from backend.app.core.errors_core import (
    DrawPersistenceConflict,
    DrawPersistenceFailure,
    UnknownJobError,
    normalize_exception,
)


def test_unknown_job_payload():
    status_code, payload = normalize_exception(UnknownJobError("lottery"))

    assert status_code == 404
    assert payload == {
        "success": False,
        "error": "not_found",
        "message": "Job not found",
        "details": {"job": "lottery"},
    }


def test_draw_errors_carry_cycle_id():
    conflict = DrawPersistenceConflict(7)
    failure = DrawPersistenceFailure(8, "connection reset")

    assert conflict.http_status == 409
    assert conflict.details == {"cycle_id": 7}
    assert failure.http_status == 503
    assert failure.details["reason"] == "connection reset"
    assert str(failure) == "draw_persistence_failure: Failed to persist draw result."


def test_http_exception_is_wrapped():
    status_code, payload = normalize_exception(HTTPException(status_code=401, detail="nope"))

    assert status_code == 401
    assert payload == {"success": False, "error": "http_error", "message": "nope"}


def test_unexpected_exception_hides_details():
    status_code, payload = normalize_exception(KeyError("secret"))

    assert status_code == 500
    assert payload["error"] == "internal_error"
    assert "secret" not in str(payload)
