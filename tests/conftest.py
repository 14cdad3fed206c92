"""Shared fixtures."""

from datetime import date

import httpx
import pytest

from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import (
    FunderType,
    NormalizedGrant,
    OrganisationProfile,
    OrgType,
)


TODAY = date(2026, 3, 1)


@pytest.fixture
def today():
    """Fixed reference date for deadline parsing."""
    return TODAY


@pytest.fixture
def make_grant():
    """Factory for NormalizedGrant with sensible defaults."""
    def _make(external_id="test_grant", **overrides):
        values = {
            "external_id": external_id,
            "source": external_id.split("_")[0],
            "title": "Community Grant",
            "funder": "Test Funder",
            "funder_type": FunderType.TRUST_FOUNDATION,
            "description": "",
        }
        values.update(overrides)
        return NormalizedGrant(**values)
    return _make


@pytest.fixture
def manchester_org():
    """Small Manchester food charity."""
    return OrganisationProfile(
        id="org-1",
        name="Hulme Food Network",
        primary_location="Manchester, Greater Manchester, England",
        org_type=OrgType.REGISTERED_CHARITY,
        annual_income_band="£50,000–£100,000",
        themes=("food poverty",),
        funder_type_preferences=(FunderType.TRUST_FOUNDATION,),
    )


@pytest.fixture
def mock_http():
    """Build an HttpClient whose requests go to handler instead of the network."""
    def _make(handler):
        return HttpClient(
            requests_per_second=1000,
            timeout=5,
            max_retries=1,
            transport=httpx.MockTransport(handler),
        )
    return _make
