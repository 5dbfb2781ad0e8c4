from __future__ import annotations

import pytest

from pymecrm.crm.errors import ValidationError
from pymecrm.crm.schemas import DEFAULT_PROBABILITY
from pymecrm.crm.validation import validate_create, validate_lead_bundle, validate_update


def _fields(exc: pytest.ExceptionInfo[ValidationError]) -> list[str]:
    return [issue.field for issue in exc.value.details]


def test_company_requires_name() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("company", {"industry": "Tech"})

    assert exc.value.message == "Validation error"
    assert _fields(exc) == ["name"]


def test_company_defaults_country_when_absent_or_null() -> None:
    assert validate_create("company", {"name": "Acme"}).country == "Costa Rica"
    assert validate_create("company", {"name": "Acme", "country": None}).country == "Costa Rica"
    assert validate_create("company", {"name": "Acme", "country": "Panamá"}).country == "Panamá"


def test_company_default_country_follows_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    from pymecrm.core.config import get_settings

    monkeypatch.setenv("DEFAULT_COUNTRY", "Nicaragua")
    get_settings.cache_clear()

    assert validate_create("company", {"name": "Acme"}).country == "Nicaragua"


@pytest.mark.parametrize("website", ["", "   ", None])
def test_company_blank_website_is_absent(website: str | None) -> None:
    company = validate_create("company", {"name": "Acme", "website": website})
    assert company.website is None


def test_company_rejects_invalid_website() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("company", {"name": "Acme", "website": "not a url"})

    assert exc.value.details[0].field == "website"
    assert exc.value.details[0].message == "Invalid URL"


def test_company_keeps_website_as_given() -> None:
    company = validate_create("company", {"name": "Acme", "website": "https://acme.cr"})
    assert company.website == "https://acme.cr"


def test_company_coerces_numeric_strings() -> None:
    company = validate_create("company", {"name": "Acme", "employees": "50", "revenue": "5000000"})

    assert company.employees == 50
    assert company.revenue == 5000000.0


def test_company_rejects_non_positive_numbers() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("company", {"name": "Acme", "employees": 0, "revenue": -10})

    assert _fields(exc) == ["employees", "revenue"]


def test_contact_reports_every_issue_in_field_order() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("contact", {"firstName": "", "lastName": "Mora", "email": "nope"})

    assert _fields(exc) == ["firstName", "email"]


def test_contact_accepts_snake_case_and_drops_unknown_fields() -> None:
    contact = validate_create(
        "contact",
        {"first_name": "Ana", "lastName": "Mora", "email": "ana@example.com", "favouriteColour": "blue"},
    )

    assert contact.first_name == "Ana"
    assert contact.is_primary is False
    assert not hasattr(contact, "favouriteColour")


def test_contact_names_are_limited_to_100_characters() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("contact", {"firstName": "x" * 101, "lastName": "Mora", "email": "ana@example.com"})

    assert _fields(exc) == ["firstName"]


def test_lead_probability_defaults_to_50_but_keeps_zero() -> None:
    assert validate_create("lead", {"title": "Deal"}).probability == DEFAULT_PROBABILITY
    assert validate_create("lead", {"title": "Deal", "probability": None}).probability == DEFAULT_PROBABILITY
    assert validate_create("lead", {"title": "Deal", "probability": 0}).probability == 0


def test_lead_defaults_status_and_priority() -> None:
    lead = validate_create("lead", {"title": "Deal", "value": "1500"})

    assert lead.status == "active"
    assert lead.priority == "medium"
    assert lead.value == 1500.0


def test_lead_rejects_out_of_range_and_unknown_enum_values() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create(
            "lead",
            {"title": "Deal", "value": -1, "probability": 150, "status": "open", "expectedCloseDate": "2026-13-01"},
        )

    assert _fields(exc) == ["value", "probability", "expectedCloseDate", "status"]


def test_follow_up_requires_title_due_date_and_type() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("follow_up", {"description": "call back"})

    assert _fields(exc) == ["title", "dueDate", "type"]


def test_follow_up_rejects_overdue_as_stored_status() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create(
            "follow_up",
            {"title": "Call", "dueDate": "2026-10-20", "type": "call", "status": "overdue"},
        )

    assert _fields(exc) == ["status"]


def test_follow_up_keeps_due_datetime_as_given() -> None:
    follow_up = validate_create("follow_up", {"title": "Call", "dueDate": "2026-10-20T09:30:00Z", "type": "call"})

    assert follow_up.due_date == "2026-10-20T09:30:00Z"
    assert follow_up.status == "pending"
    assert follow_up.priority == "medium"


@pytest.mark.parametrize(
    "due_date",
    ["20260101", "2026-W01-1", "2026-001", "20261019T100000", "2026-10-19garbage", "2026-10-19T10"],
)
def test_follow_up_rejects_non_extended_iso_due_dates(due_date: str) -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("follow_up", {"title": "Call", "dueDate": due_date, "type": "call"})

    assert _fields(exc) == ["dueDate"]
    assert exc.value.details[0].message.startswith("Invalid date")


@pytest.mark.parametrize("due_date", ["2026-10-20", "2026-10-20T09:30", "2026-10-20 09:30:00.123+02:00"])
def test_follow_up_accepts_extended_iso_due_dates(due_date: str) -> None:
    assert validate_create("follow_up", {"title": "Call", "dueDate": due_date, "type": "call"}).due_date == due_date


@pytest.mark.parametrize("close_date", ["2026-10-19garbage", "20261019", "2026-W42-1", "2026-10-19T10:00:00"])
def test_lead_expected_close_date_must_be_plain_date(close_date: str) -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("lead", {"title": "Deal", "expectedCloseDate": close_date})

    assert _fields(exc) == ["expectedCloseDate"]
    assert exc.value.details[0].message == "Invalid date, expected YYYY-MM-DD"


def test_update_only_reports_supplied_fields() -> None:
    update = validate_update("company", {"industry": "Retail", "website": ""})

    assert update.model_dump(exclude_unset=True) == {"industry": "Retail", "website": None}


@pytest.mark.parametrize("value", [None, "", "  "])
def test_update_rejects_clearing_required_field(value: str | None) -> None:
    with pytest.raises(ValidationError) as exc:
        validate_update("company", {"name": value})

    assert exc.value.details[0].field == "name"
    assert exc.value.details[0].message == "Field cannot be empty"


def test_non_object_payload_is_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_create("company", ["Acme"])

    assert _fields(exc) == ["body"]


def test_bundle_prefixes_issues_with_part_name() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_lead_bundle({"company": {"website": "bad"}, "lead": {}})

    assert _fields(exc) == ["company.name", "company.website", "lead.title"]


def test_bundle_requires_lead_part() -> None:
    with pytest.raises(ValidationError) as exc:
        validate_lead_bundle({"company": {"name": "Acme"}})

    assert _fields(exc) == ["lead"]


def test_bundle_accepts_optional_parts() -> None:
    bundle = validate_lead_bundle({"lead": {"title": "Deal"}})

    assert bundle.company is None
    assert bundle.contact is None
    assert bundle.lead.title == "Deal"
