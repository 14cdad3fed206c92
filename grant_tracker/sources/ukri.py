"""
UKRI Gateway to Research.

The projects endpoint answers JSON when asked, but some deployments fall
back to XML regardless of the Accept header; both shapes are handled.
"""

from datetime import date

from bs4 import BeautifulSoup

from grant_tracker.core.errors import ParseError
from grant_tracker.core.http_client import HttpClient
from grant_tracker.core.models import FunderType, NormalizedGrant
from grant_tracker.core.normalizer import (
    build_external_id,
    normalise_sectors,
    normalize_title,
    parse_deadline,
)
from .base import SourceAdapter
from .registry import register_source


PROJECTS_URL = "https://gtr.ukri.org/gtr/api/projects"


@register_source("ukri")
class UkriAdapter(SourceAdapter):
    """Active research projects from Gateway to Research."""

    source_id = "ukri"
    funder_type = FunderType.GOVERNMENT

    async def fetch(self, http: HttpClient, today: date) -> list[NormalizedGrant]:
        url = self.options.get("projects_url", PROJECTS_URL)
        page_size = int(self.options.get("page_size", 100))

        response = await http.get(
            url,
            params={"p": 1, "s": page_size},
            headers={"Accept": "application/json"},
        )

        if "json" in response.headers.get("content-type", ""):
            payload = response.json()
            if not isinstance(payload, dict):
                raise ParseError(f"Expected a JSON object, got {type(payload).__name__}", self.source_id)
            projects = (
                payload.get("project")
                or (payload.get("projectOverview") or {}).get("project")
                or payload.get("projects")
                or []
            )
        else:
            projects = parse_projects_xml(response.text)[:page_size]

        active = [
            p for p in projects
            if not p.get("status") or "active" in str(p["status"]).lower()
        ]
        self.logger.debug("projects_filtered", total=len(projects), active=len(active))

        return self.map_records(active, lambda p: self._normalise(p, today))

    def _normalise(self, project: dict, today: date) -> NormalizedGrant:
        project_id = project.get("id") or project["grantReference"]
        fund = project.get("fund") or {}

        amount = fund.get("valuePounds")
        amount = int(amount) if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None

        lead_orgs = _unwrap(project.get("leadOrganisations"), "leadOrganisation")
        lead_org = lead_orgs[0].get("name") if lead_orgs else None
        topics = _unwrap(project.get("researchTopics"), "researchTopic")

        return NormalizedGrant(
            external_id=build_external_id(self.source_id, project_id),
            source=self.source_id,
            title=normalize_title(project.get("title")) or "Untitled Project",
            funder=project.get("leadFunder") or "UKRI",
            funder_type=self.funder_type,
            description=(
                project.get("abstractText")
                or project.get("techAbstractText")
                or project.get("description")
                or ""
            ),
            amount_min=None,
            amount_max=amount,
            deadline=parse_deadline(fund.get("end"), today),
            is_rolling=False,
            is_local=False,
            sectors=normalise_sectors([t.get("text", "") for t in topics]),
            eligibility_criteria=[f"Lead organisation: {lead_org}"] if lead_org else [],
            apply_url=project.get("url") or None,
            raw_source_payload=project,
        )


def parse_projects_xml(xml: str) -> list[dict]:
    """Flatten <project> elements into the same dict shape as the JSON API."""
    soup = BeautifulSoup(xml, "lxml-xml")
    projects = []

    for block in soup.find_all("project"):
        def get(tag: str) -> str:
            found = block.find(tag)
            return found.get_text(strip=True) if found else ""

        value = get("valuePounds")
        projects.append({
            "id": get("id") or get("grantReference"),
            "title": get("title"),
            "abstractText": get("abstractText") or get("abstract"),
            "status": get("status"),
            "leadFunder": get("leadFunder") or "UKRI",
            "fund": {
                "valuePounds": int(float(value)) if value else None,
                "end": get("end") or None,
            },
        })

    return projects


def _unwrap(value, inner_key: str) -> list[dict]:
    """GtR wraps arrays as {"leadOrganisation": [...]} or a single object."""
    if isinstance(value, list):
        return [v for v in value if isinstance(v, dict)]
    if isinstance(value, dict):
        inner = value.get(inner_key)
        if isinstance(inner, list):
            return [v for v in inner if isinstance(v, dict)]
        if isinstance(inner, dict):
            return [inner]
    return []
