"""Tests for data models."""

from datetime import date, datetime, timezone

import pytest

from grant_tracker.core.errors import ParseError, TransportError
from grant_tracker.core.models import (
    CrawlErrorKind,
    CrawlOutcome,
    FunderType,
    NormalizedGrant,
    OrganisationProfile,
    OrgType,
    StoredGrantRecord,
    coerce_amount,
)


class TestNormalizedGrant:
    """Tests for NormalizedGrant dataclass."""

    def test_defaults(self):
        grant = NormalizedGrant(external_id="gov_uk_x", source="gov_uk", title="X")
        assert grant.funder_type == FunderType.OTHER
        assert grant.is_rolling is False
        assert grant.is_local is False
        assert grant.sectors == []
        assert grant.raw_source_payload == {}

    def test_funder_type_coerced_from_string(self):
        grant = NormalizedGrant(external_id="a", source="a", title="A", funder_type="lottery")
        assert grant.funder_type == FunderType.LOTTERY

    def test_unknown_funder_type_becomes_other(self):
        grant = NormalizedGrant(external_id="a", source="a", title="A", funder_type="philanthropist")
        assert grant.funder_type == FunderType.OTHER

    def test_min_above_max_rejected(self):
        with pytest.raises(ValueError):
            NormalizedGrant(external_id="a", source="a", title="A", amount_min=10_000, amount_max=5_000)

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            NormalizedGrant(external_id="a", source="a", title="A", amount_max=-1)

    def test_to_dict(self):
        grant = NormalizedGrant(
            external_id="a",
            source="a",
            title="A",
            funder_type=FunderType.CORPORATE,
            deadline=date(2026, 5, 14),
        )
        data = grant.to_dict()
        assert data["funder_type"] == "corporate"
        assert data["deadline"] == "2026-05-14"

    def test_text_joins_title_description_sectors(self):
        grant = NormalizedGrant(
            external_id="a", source="a", title="Food Fund", description="Meals", sectors=["health"]
        )
        assert grant.text == "Food Fund Meals health"


class TestStoredGrantRecord:
    """Tests for StoredGrantRecord."""

    def test_from_grant_copies_fields(self):
        grant = NormalizedGrant(external_id="a", source="a", title="A", sectors=["arts"])
        seen = datetime(2026, 3, 1, tzinfo=timezone.utc)
        record = StoredGrantRecord.from_grant(grant, first_seen_at=seen, last_seen_at=seen)

        assert record.external_id == "a"
        assert record.sectors == ["arts"]
        assert record.is_active is True
        assert record.to_dict()["first_seen_at"] == seen.isoformat()


class TestCrawlOutcome:
    """Tests for CrawlOutcome."""

    def test_ok(self):
        assert CrawlOutcome(source="gov_uk", fetched_count=3, upserted_count=3).ok is True

    def test_failed(self):
        outcome = CrawlOutcome(source="ukri", error_kind=CrawlErrorKind.TRANSPORT, error="timed out")
        assert outcome.ok is False
        assert outcome.to_dict() == {
            "source": "ukri",
            "fetched": 0,
            "upserted": 0,
            "errorKind": "transport",
            "error": "timed out",
        }


class TestCrawlErrors:
    """Tests for the crawl error taxonomy."""

    def test_kind_per_class(self):
        assert TransportError("x").kind == CrawlErrorKind.TRANSPORT
        assert ParseError("x").kind == CrawlErrorKind.PARSE

    def test_str_includes_source(self):
        assert str(ParseError("bad page", "ukri")) == "[ukri] bad page"


class TestOrganisationProfile:
    """Tests for OrganisationProfile.from_dict."""

    def test_from_dict(self):
        org = OrganisationProfile.from_dict({
            "id": 7,
            "name": "Leeds Youth Arts",
            "org_type": "cic",
            "themes": ["arts", "young people"],
            "beneficiaries": "young people",
            "funder_type_preferences": ["lottery", "nonsense"],
        })
        assert org.id == "7"
        assert org.org_type == OrgType.CIC
        assert org.themes == ("arts", "young people")
        assert org.beneficiaries == ("young people",)
        assert org.funder_type_preferences == (FunderType.LOTTERY, FunderType.OTHER)

    def test_grant_targets_coerced(self):
        org = OrganisationProfile.from_dict({"min_grant_target": "5000", "max_grant_target": "£20,000"})
        assert (org.min_grant_target, org.max_grant_target) == (5_000, 20_000)

    def test_unreadable_grant_targets_dropped(self):
        org = OrganisationProfile.from_dict({"min_grant_target": "lots", "max_grant_target": -1})
        assert (org.min_grant_target, org.max_grant_target) == (None, None)

    def test_empty_profile(self):
        org = OrganisationProfile.from_dict({})
        assert org.org_type == OrgType.OTHER
        assert org.primary_location is None
        assert org.themes == ()


class TestCoerceAmount:
    """Tests for coerce_amount."""

    @pytest.mark.parametrize("value,expected", [
        (5_000, 5_000),
        (2500.7, 2_500),
        ("£12,500", 12_500),
        (" 300 ", 300),
        ("", None),
        ("about ten grand", None),
        (True, None),
        (-5, None),
        (None, None),
        ([5000], None),
    ])
    def test_values(self, value, expected):
        assert coerce_amount(value) == expected
