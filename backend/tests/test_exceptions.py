from smartschedule.core.exceptions import (
    AppError,
    DataUnavailable,
    GenerationCancelled,
    Infeasible,
    InvalidEntity,
    InvalidRequest,
    PersistenceFailure,
    ResourceNotFoundError,
)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_error_taxonomy_status_codes():
    assert InvalidEntity("room", "r-1", "capacity", "must be greater than 0").status_code == 422
    assert InvalidRequest("bad seed").status_code == 400
    assert DataUnavailable("missing level").status_code == 404
    assert Infeasible(["sec-1"]).status_code == 409
    assert PersistenceFailure("locked", transient=True).status_code == 503
    assert GenerationCancelled("timeout").status_code == 409
    assert ResourceNotFoundError("Schedule", "s-1").status_code == 404


def test_error_details_carry_identifiers():
    infeasible = Infeasible(["sec-1", "sec-2"], details={"reasons": {}})
    assert infeasible.details == {"section_ids": ["sec-1", "sec-2"], "reasons": {}}
    assert GenerationCancelled("cancelled", details={"steps": 64}).details == {"reason": "cancelled", "steps": 64}
    assert not PersistenceFailure("disk full").transient


def test_oversized_request_is_rejected(client):
    response = client.post(
        "/api/rule-sets",
        content=b"{}",
        headers={"content-type": "application/json", "content-length": "5000000"},
    )

    assert response.status_code == 413
    assert response.json()["details"]["max_bytes"] == 1_000_000
