import pytest

from directory.contact import (
    ContactValidationError,
    list_submissions,
    submission_counts,
    submit_contact,
    update_submission_status,
    validate_contact,
)


def test_validate_contact_defaults_subject_and_status():
    row = validate_contact({"name": " Aisyah ", "email": "a@example.com", "message": "Hello", "centerName": "KL Rehab"})
    assert row == {
        "name": "Aisyah",
        "email": "a@example.com",
        "subject": "General Inquiry",
        "message": "Hello",
        "center_name": "KL Rehab",
        "status": "new",
    }


@pytest.mark.parametrize(
    "form",
    [
        {"name": "A", "email": "not-an-email", "message": "Hi"},
        {"name": "", "email": "a@example.com", "message": "Hi"},
        {"name": "A", "email": "a@example.com", "message": "  "},
    ],
)
def test_validate_contact_rejects_incomplete_forms(form):
    with pytest.raises(ContactValidationError):
        validate_contact(form)


def test_submission_lifecycle(store):
    submit_contact(store, {"name": "A", "email": "a@example.com", "message": "first"})
    second = submit_contact(store, {"name": "B", "email": "b@example.com", "message": "second"})
    for row, stamp in zip(store.tables["contact_submissions"], ["2024-01-01", "2024-02-01"]):
        row["created_at"] = stamp

    updated = update_submission_status(store, second["id"], "resolved")
    assert updated["status"] == "resolved"

    rows = list_submissions(store)
    assert [r["message"] for r in rows] == ["second", "first"]
    assert [r["message"] for r in list_submissions(store, "new")] == ["first"]
    assert submission_counts(rows) == {"new": 1, "in_progress": 0, "resolved": 1, "total": 2}


def test_unknown_status_is_rejected(store):
    with pytest.raises(ContactValidationError):
        update_submission_status(store, "x", "archived")
    with pytest.raises(ContactValidationError):
        list_submissions(store, "archived")
