"""
360Giving Datastore API.

Grants made by a curated set of large UK funders. The API allows roughly
two requests a second, so funders are fetched one after another with a
short stagger rather than fanned out.
"""

import asyncio
from datetime import date

import httpx

from grant_tracker.core.errors import ParseError, TransportError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import FunderType, NormalizedGrant
from grant_tracker.core.normalizer import build_external_id, normalize_title, parse_deadline
from .base import SourceAdapter
from .registry import register_source


API_BASE = "https://api.threesixtygiving.org/api/v1"

DEFAULT_FUNDERS = [
    {"id": "GB-GOR-PC390", "label": "National Lottery Heritage Fund"},
    {"id": "GB-CHC-326568", "label": "Comic Relief"},
    {"id": "GB-CHC-268369", "label": "Charities Aid Foundation"},
]


@register_source("360giving")
class ThreeSixtyGivingAdapter(SourceAdapter):
    """Recent grants_made per funder organisation."""

    source_id = "360giving"
    funder_type = FunderType.TRUST_FOUNDATION

    async def fetch(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        api_base = self.options.get("api_base", API_BASE)
        funders = self.options.get("funders", DEFAULT_FUNDERS)
        stagger = float(self.options.get("stagger_seconds", 0.6))
        limit = int(self.options.get("limit", 50))

        grants: list[NormalizedGrant] = []
        failures: list[str] = []

        for index, funder in enumerate(funders):
            if index > 0 and stagger > 0:
                await asyncio.sleep(stagger)

            url = f"{api_base}/org/{funder['id']}/grants_made/"
            try:
                payload = await http.get_json(url, params={"limit": limit})
            except (httpx.HTTPError, ValueError) as e:
                failures.append(funder["id"])
                self.logger.warning("funder_fetch_failed", funder=funder["id"], error=str(e))
                continue

            if not isinstance(payload, dict):
                raise ParseError(
                    f"Funder {funder['id']}: expected a JSON object, got {type(payload).__name__}", self.source_id
                )
            results = payload.get("results") or []
            self.logger.debug("funder_fetched", funder=funder["id"], results=len(results))
            grants.extend(
                self.map_records(results, lambda r, label=funder["label"]: self._normalise(r, label, today))
            )

        if funders and len(failures) == len(funders):
            raise TransportError(
                f"All funders failed: {', '.join(failures)}", self.source_id
            )

        return grants

    def _normalise(self, record: dict, fallback_funder: str, today: date) -> NormalizedGrant:
        grant = record.get("data") or record
        grant_id = grant.get("id") or record["grant_id"]

        funding_orgs = grant.get("fundingOrganization") or []
        funder = (funding_orgs[0].get("name") if funding_orgs else None) or fallback_funder

        programmes = grant.get("grantProgramme") or []
        url = (programmes[0].get("url") if programmes else None) or grant.get("url") or grant.get("dataSource")

        planned = grant.get("plannedDates") or []
        end_date = planned[0].get("endDate") if planned else None

        amount = grant.get("amountAwarded")
        amount = int(amount) if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None

        return NormalizedGrant(
            external_id=build_external_id(self.source_id, grant_id),
            source=self.source_id,
            title=normalize_title(grant.get("title")) or "Untitled Grant",
            funder=funder,
            funder_type=self.funder_type,
            description=grant.get("description") or "",
            amount_min=None,
            amount_max=amount,
            deadline=parse_deadline(end_date or grant.get("dateModified"), today),
            is_rolling=False,
            is_local=False,
            apply_url=url or None,
            raw_source_payload=grant,
        )
