"""
Free-text ranking: cheap local pre-filter plus an external LLM oracle.

The core only narrows the candidate list and serialises the applicant
profile; the oracle decides the final ranking. Anthropic is optional
(pip install grant-tracker[llm]).
"""

import json
import re
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from grant_tracker.config.loader import Settings
from grant_tracker.core.errors import OracleError
from grant_tracker.core.models import NormalizedGrant, OrganisationProfile, coerce_amount
from grant_tracker.core.normalizer import format_currency, format_range
from .policy import ORG_TYPE_LABELS
from .scoring import MatchScorer

logger = structlog.get_logger(__name__)


DEFAULT_PREFILTER_LIMIT = 35
KEYWORD_HIT_POINTS = 3
NO_PROFILE_SCORE = 50
MIN_QUERY_TERM_LENGTH = 3


@dataclass(frozen=True)
class RankedGrant:
    """One oracle verdict."""
    grant_id: str
    score: int
    reason: str

    def to_dict(self) -> dict:
        return {"grantId": self.grant_id, "score": self.score, "reason": self.reason}


def query_terms(query: str) -> list[str]:
    return [t for t in query.lower().split() if len(t) >= MIN_QUERY_TERM_LENGTH]


def prefilter_candidates(
    query: str,
    grants: Iterable[NormalizedGrant],
    org: Optional[OrganisationProfile] = None,
    limit: int = DEFAULT_PREFILTER_LIMIT,
    scorer: Optional[MatchScorer] = None,
) -> list[NormalizedGrant]:
    """
    Narrow grants before handing them to the oracle.

    Each query term longer than two characters found in the grant's
    title, funder, description or sectors is worth 3 points, added to the
    grant's match score for the organisation (50 when there is no profile).
    """
    terms = query_terms(query)
    scorer = scorer or MatchScorer()

    ranked = []
    for grant in grants:
        text = " ".join([grant.title, grant.funder or "", grant.description or "", " ".join(grant.sectors)]).lower()
        hits = sum(1 for t in terms if t in text)
        base = scorer.score(grant, org).score if org is not None else NO_PROFILE_SCORE
        ranked.append((hits * KEYWORD_HIT_POINTS + base, grant))

    ranked.sort(key=lambda pair: (-pair[0], pair[1].external_id))
    return [grant for _, grant in ranked[:limit]]


def build_org_context(org: Optional[OrganisationProfile]) -> str:
    """Serialise the applicant profile for the oracle prompt ("" if empty)."""
    if org is None:
        return ""

    parts = []
    if org.name:
        parts.append(f"Organisation: {org.name}")
    if org.org_type:
        parts.append(f"Type: {ORG_TYPE_LABELS.get(org.org_type, str(org.org_type))}")
    if org.primary_location:
        parts.append(f"Location: {org.primary_location}")
    if org.annual_income_band:
        parts.append(f"Annual income: {org.annual_income_band}")
    if org.mission:
        parts.append(f"Mission: {org.mission}")
    if org.themes:
        parts.append(f"Themes: {', '.join(org.themes)}")
    if org.areas_of_work:
        parts.append(f"Areas of work: {', '.join(org.areas_of_work)}")
    if org.beneficiaries:
        parts.append(f"Beneficiaries: {', '.join(org.beneficiaries)}")
    target_min, target_max = coerce_amount(org.min_grant_target), coerce_amount(org.max_grant_target)
    if target_min or target_max:
        low = format_currency(target_min) if target_min else "any"
        high = format_currency(target_max) if target_max else "any"
        parts.append(f"Grant size target: {low} to {high}")
    if org.funder_type_preferences:
        parts.append(
            "Preferred funder types: " + ", ".join(f.value for f in org.funder_type_preferences)
        )
    if org.key_outcomes:
        parts.append(f"Key outcomes: {'; '.join(org.key_outcomes[:3])}")

    if not parts:
        return ""

    lines = "\n".join(f"- {p}" for p in parts)
    return (
        "\n\nAPPLICANT PROFILE (use this to personalise scoring, prioritise grants that fit "
        "this organisation's location, size, mission and themes):\n"
        f"{lines}\n"
    )


RANKING_PROMPT = """You are a UK charity funding expert helping a small charity find the most suitable grants.

The user is searching for: "{query}"
{org_context}
Available grants:
{grants_json}

Scoring rules, apply these strictly:
1. TOPIC match: does the grant's sectors/description match the activity?
2. GEOGRAPHY match: if the query or the applicant profile names a place, check whether the grant serves that area or has isLocal:true. UK-wide funders with no local dimension score at most 35 when a specific location is given.
3. SIZE fit: match the grant's amount range to the applicant's income band and grant size target.
4. ELIGIBILITY fit: does the organisation type and scale match the grant's requirements?
5. THEME/MISSION fit: boost grants that align with the applicant's themes, areas of work and beneficiaries.

Return a JSON array of the top matching grants ranked by score. For each include:
- grantId (the id field)
- score (0-100)
- reason (one sentence explaining why this grant fits)

Only include grants with score above 40. Max 20 results.
Return ONLY a valid JSON array, no markdown, no other text."""


def grant_context(grant: NormalizedGrant) -> dict:
    return {
        "id": grant.external_id,
        "title": grant.title,
        "funder": grant.funder,
        "description": grant.description,
        "amountMin": grant.amount_min,
        "amountMax": grant.amount_max,
        "amount": format_range(grant.amount_min, grant.amount_max),
        "sectors": list(grant.sectors),
        "isRolling": grant.is_rolling,
        "isLocal": grant.is_local,
    }


def build_ranking_prompt(
    query: str,
    candidates: list[NormalizedGrant],
    org: Optional[OrganisationProfile] = None,
) -> str:
    return RANKING_PROMPT.format(
        query=query,
        org_context=build_org_context(org),
        grants_json=json.dumps([grant_context(g) for g in candidates]),
    )


def parse_ranking_response(text: str) -> list[RankedGrant]:
    """
    Parse the oracle's answer into RankedGrant values.

    Tolerates markdown code fences and prose around the JSON array.

    Raises:
        OracleError: If no JSON array can be recovered
    """
    cleaned = re.sub(r"```(?:json)?\s*", "", text or "").strip()
    if not cleaned.startswith("["):
        match = re.search(r"\[.*\]", cleaned, re.DOTALL)
        if not match:
            raise OracleError("Oracle did not return a JSON array")
        cleaned = match.group(0)

    try:
        items = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleError(f"Invalid JSON from oracle: {e}") from e
    if not isinstance(items, list):
        raise OracleError("Oracle response is not a list")

    ranked = []
    for item in items:
        if not isinstance(item, dict) or "grantId" not in item:
            logger.warning("oracle_item_skipped", item=str(item)[:200])
            continue
        try:
            score = int(item.get("score", 0))
        except (TypeError, ValueError):
            score = 0
        ranked.append(RankedGrant(
            grant_id=str(item["grantId"]),
            score=max(0, min(100, score)),
            reason=str(item.get("reason") or ""),
        ))
    return ranked


class RankingOracle:
    """
    Anthropic-backed ranking oracle.

    Usage:
        oracle = RankingOracle.from_settings(settings)
        ranked = await oracle.search(query, grants, org)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 3000,
        prefilter_limit: int = DEFAULT_PREFILTER_LIMIT,
        client=None,
    ):
        """
        Initialize oracle.

        Args:
            api_key: Anthropic API key (from Settings)
            model: Model identifier
            max_tokens: Response budget
            prefilter_limit: Candidates kept by the local pre-filter
            client: Pre-built async client (tests inject a fake)
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.prefilter_limit = prefilter_limit
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client=None) -> "RankingOracle":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.oracle_model,
            prefilter_limit=settings.prefilter_limit,
            client=client,
        )

    def is_available(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self):
        """Lazy-load Anthropic client."""
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                logger.warning("anthropic_not_installed", hint="pip install grant-tracker[llm]")
                raise
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def rank(
        self,
        query: str,
        candidates: list[NormalizedGrant],
        org: Optional[OrganisationProfile] = None,
    ) -> list[RankedGrant]:
        """
        Ask the oracle to rank pre-filtered candidates.

        Grant ids the oracle invents are dropped.

        Raises:
            OracleError: If the oracle is unconfigured or its answer is unusable
        """
        if not self.is_available():
            raise OracleError("Ranking oracle not configured (no API key)")
        if not candidates:
            return []

        prompt = build_ranking_prompt(query, candidates, org)
        client = self._get_client()

        message = await client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        if not message.content:
            raise OracleError("Empty response from oracle")

        known = {g.external_id for g in candidates}
        ranked = [r for r in parse_ranking_response(message.content[0].text) if r.grant_id in known]

        logger.info("oracle_ranked", query=query, candidates=len(candidates), ranked=len(ranked))
        return ranked

    async def search(
        self,
        query: str,
        grants: Iterable[NormalizedGrant],
        org: Optional[OrganisationProfile] = None,
    ) -> list[RankedGrant]:
        """Pre-filter grants locally, then rank the survivors."""
        candidates = prefilter_candidates(query, grants, org, limit=self.prefilter_limit)
        return await self.rank(query, candidates, org)
