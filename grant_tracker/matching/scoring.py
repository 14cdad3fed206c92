"""
Match scoring engine.

Scores one grant against one organisation profile on five independently
capped dimensions:

- Location (25): local grants naming the organisation's place score highest
- Themes & work (25): weighted fuzzy overlap of profile terms with grant text
- Grant size (20): award range against target range or income band
- Funder type (15): stated funder-type preferences
- Eligibility (15): legal form and geography named in eligibility clauses

Feedback from liked/disliked grants is a bounded adjustment applied after
the five dimensions and reported separately in the breakdown.

The scorer is a pure function of its inputs: no I/O, no clock, no
randomness, so identical inputs give byte-identical results.
"""

import math
import re
from typing import Optional

from grant_tracker.core.models import (
    DimensionScore,
    FeedbackAdjustment,
    FeedbackSignals,
    FunderType,
    MatchBreakdown,
    MatchResult,
    NormalizedGrant,
    OrganisationProfile,
    OrgType,
    coerce_amount,
)
from .feedback import apply_feedback
from .policy import (
    CHARITY_ONLY_PATTERN,
    DEFAULT_POLICY,
    LEGAL_FORM_PATTERNS,
    RESTRICTION_PATTERN,
    STOPWORDS,
    UK_NATIONS,
    ScoringPolicy,
)


REASON_SEPARATOR = " · "


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (round() is banker's)."""
    return int(math.floor(value + 0.5))


def fuzzy_overlap(term: str, text_lower: str, min_word_length: int) -> bool:
    """True if any word of term with at least min_word_length letters occurs in text."""
    return any(
        len(word) >= min_word_length and word in text_lower
        for word in re.split(r"\W+", term.lower())
    )


def location_parts(org: OrganisationProfile) -> list[str]:
    """"Manchester, Greater Manchester, England" -> town, region, nation."""
    if not org.primary_location:
        return []
    return [p.strip() for p in org.primary_location.split(",") if p.strip()]


def org_nations(org: OrganisationProfile) -> set[str]:
    location = (org.primary_location or "").lower()
    return {n for n in UK_NATIONS if re.search(rf"\b{n}\b", location)}


class MatchScorer:
    """
    Five-dimension scorer parameterised by a ScoringPolicy.

    Usage:
        scorer = MatchScorer()
        result = scorer.score(grant, org)
        result.score, result.reason, result.breakdown
    """

    def __init__(self, policy: Optional[ScoringPolicy] = None):
        self.policy = policy or DEFAULT_POLICY

    def score(
        self,
        grant: NormalizedGrant,
        org: OrganisationProfile,
        feedback: Optional[FeedbackSignals] = None,
    ) -> MatchResult:
        reasons: list[str] = []

        location = self.score_location(grant, org, reasons)
        themes = self.score_themes(grant, org, reasons)
        grant_size = self.score_grant_size(grant, org, reasons)
        funder_type = self.score_funder_type(grant, org, reasons)
        eligibility = self.score_eligibility(grant, org, reasons)

        adjustment = apply_feedback(grant, feedback, self.policy) if feedback else FeedbackAdjustment()
        if adjustment.points > 0:
            reasons.append("Similar to grants you liked")
        elif adjustment.points < 0:
            reasons.append("Similar to grants you passed on")

        breakdown = MatchBreakdown(
            location=location,
            themes=themes,
            grant_size=grant_size,
            funder_type=funder_type,
            eligibility=eligibility,
            feedback=adjustment,
        )
        subtotal = min(self.policy.max_total, 100, breakdown.subtotal)
        total = max(0, min(100, subtotal + adjustment.points))

        return MatchResult(score=total, reason=self.build_reason(reasons, total), breakdown=breakdown)

    def build_reason(self, reasons: list[str], total: int) -> str:
        if reasons:
            return REASON_SEPARATOR.join(reasons)
        if total >= self.policy.good_match_score:
            return "Good overall match for your organisation"
        if total >= self.policy.partial_match_score:
            return "Partial match, worth reviewing eligibility"
        return "Lower match, check eligibility carefully"

    # Dimensions

    def score_location(self, grant: NormalizedGrant, org: OrganisationProfile, reasons: list[str]) -> DimensionScore:
        p = self.policy
        score = p.location_national

        if grant.is_local:
            text = " ".join([grant.title, grant.description or "", *grant.eligibility_criteria]).lower()
            matched = next((part for part in location_parts(org) if part.lower() in text), None)
            if matched:
                score = p.location_local_match
                reasons.append(f"Local match for {matched}")
            elif org.primary_location:
                score = p.location_local
                reasons.append("Local funder")

        return DimensionScore(min(score, p.location_cap), p.location_cap, "Location")

    def score_themes(self, grant: NormalizedGrant, org: OrganisationProfile, reasons: list[str]) -> DimensionScore:
        p = self.policy
        explicit = [t for t in (*org.themes, *org.areas_of_work, *org.beneficiaries) if t and t.strip()]
        derived = self.derived_terms(org, explicit)

        if not explicit and not derived:
            score = p.themes_neutral
        else:
            text = grant.text.lower()
            explicit_hits = sum(1 for t in explicit if fuzzy_overlap(t, text, p.min_word_length))
            derived_hits = sum(1 for t in derived if fuzzy_overlap(t, text, p.min_word_length))

            total_weight = len(explicit) * p.explicit_term_weight + len(derived) * p.derived_term_weight
            weighted_hits = explicit_hits * p.explicit_term_weight + derived_hits * p.derived_term_weight
            score = round_half_up(weighted_hits / total_weight * p.themes_cap)

            hits = explicit_hits + derived_hits
            if hits >= p.strong_theme_hits:
                reasons.append("Strong theme match")
            elif hits >= 1:
                reasons.append("Partial theme match")

        score += self.sector_overlap(grant, org) * p.sector_overlap_boost
        return DimensionScore(min(score, p.themes_cap), p.themes_cap, "Themes & work")

    def derived_terms(self, org: OrganisationProfile, explicit: list[str]) -> list[str]:
        """Significant words from mission and key outcomes, bounded in number."""
        source = " ".join([org.mission or "", *org.key_outcomes]).lower()
        explicit_words = {w for t in explicit for w in re.split(r"\W+", t.lower())}

        terms: list[str] = []
        for word in re.findall(r"[a-z]+", source):
            if len(word) < self.policy.min_word_length or word in STOPWORDS:
                continue
            if word in explicit_words or word in terms:
                continue
            terms.append(word)
            if len(terms) >= self.policy.max_derived_terms:
                break
        return terms

    def sector_overlap(self, grant: NormalizedGrant, org: OrganisationProfile) -> int:
        """Grant sector tags that match one of the organisation's themes."""
        themes = [t.lower().strip() for t in org.themes if t and t.strip()]
        count = 0
        for sector in (s.lower().strip() for s in grant.sectors):
            if not sector:
                continue
            sector_head = sector.split()[0]
            if any(sector == t or t.split()[0] in sector or sector_head in t for t in themes):
                count += 1
        return count

    def score_grant_size(self, grant: NormalizedGrant, org: OrganisationProfile, reasons: list[str]) -> DimensionScore:
        p = self.policy
        cap = p.grant_size_cap
        grant_max = grant.amount_max if grant.amount_max is not None else grant.amount_min
        grant_min = grant.amount_min or 0

        if grant_max is None:
            score = p.size_neutral
        elif coerce_amount(org.min_grant_target) or coerce_amount(org.max_grant_target):
            target_min = coerce_amount(org.min_grant_target) or 0
            target_max = coerce_amount(org.max_grant_target) or math.inf
            if grant_max >= target_min and grant_min <= target_max:
                score = p.size_in_target
                reasons.append("Within your target grant size")
            elif grant_max < target_min:
                score = p.size_too_small
            else:
                score = p.size_too_large
        elif org.annual_income_band and grant_max > 0:
            ratio = grant_max / p.income_midpoint(org.annual_income_band)
            score = p.ratio_score(ratio)
            if score >= p.size_suits_threshold:
                reasons.append("Grant size suits your organisation")
        else:
            score = p.size_neutral

        return DimensionScore(min(score, cap), cap, "Grant size")

    def score_funder_type(self, grant: NormalizedGrant, org: OrganisationProfile, reasons: list[str]) -> DimensionScore:
        p = self.policy
        preferences = {FunderType.coerce(f) for f in org.funder_type_preferences}

        if not preferences:
            score = p.funder_type_neutral
        elif FunderType.coerce(grant.funder_type) in preferences:
            score = p.funder_type_preferred
            reasons.append("Preferred funder type")
        else:
            score = p.funder_type_excluded

        return DimensionScore(min(score, p.funder_type_cap), p.funder_type_cap, "Funder type")

    def score_eligibility(self, grant: NormalizedGrant, org: OrganisationProfile, reasons: list[str]) -> DimensionScore:
        p = self.policy
        org_type = OrgType.coerce(org.org_type)
        score = p.eligibility_base.get(org_type, p.eligibility_base[OrgType.OTHER])

        clauses = [c.lower() for c in grant.eligibility_criteria if c]
        text = " ".join(clauses)

        if text:
            form_pattern = LEGAL_FORM_PATTERNS.get(org_type)
            if form_pattern and re.search(form_pattern, text):
                score += p.named_legal_form_bonus
                reasons.append("Eligibility names your organisation type")

            if any(part.lower() in text for part in location_parts(org)):
                score += p.named_location_bonus

            restricted = {
                n for clause in clauses if re.search(RESTRICTION_PATTERN, clause)
                for n in UK_NATIONS if re.search(rf"\b{n}\b", clause)
            }
            nations = org_nations(org)
            if restricted and nations and not (restricted & nations):
                score -= p.nation_restriction_penalty
                reasons.append("Restricted to " + ", ".join(n.title() for n in sorted(restricted)))

            if org_type != OrgType.REGISTERED_CHARITY and re.search(CHARITY_ONLY_PATTERN, text):
                score -= p.charity_only_penalty
                reasons.append("Registered charities only")

        return DimensionScore(max(0, min(score, p.eligibility_cap)), p.eligibility_cap, "Eligibility")


_DEFAULT_SCORER = MatchScorer()


def compute_match_score(
    grant: NormalizedGrant,
    org: OrganisationProfile,
    feedback: Optional[FeedbackSignals] = None,
    policy: Optional[ScoringPolicy] = None,
) -> MatchResult:
    """Score one grant for one organisation (see MatchScorer)."""
    scorer = MatchScorer(policy) if policy else _DEFAULT_SCORER
    return scorer.score(grant, org, feedback)
