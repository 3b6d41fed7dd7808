"""
Post-processing of merged provider results.

Flattens successful provider results, computes distances, applies the
radius, removes duplicates, fills in missing data and sorts for display.
Every step returns new Opportunity values; inputs are never modified.
"""

from __future__ import annotations

import dataclasses
import locale
import re
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from core.logging import get_logger
from services.geocoding.distance import calculate_distance
from services.search.types import ProcessedResults, ProcessingOptions, ProcessingStats

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from services.geocoding.base import Coordinates
    from services.providers.base import Opportunity, ProviderResult

logger = get_logger(__name__)

SOURCE_RELIABILITY: dict[str, int] = {
    "VolunteerHub": 3,
    "JustServe": 2,
    "Idealist": 2,
}
DEFAULT_RELIABILITY = 1

SKILL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "communication": ("communication", "speaking", "presentation", "outreach"),
    "teamwork": ("team", "group", "collaborate", "together"),
    "leadership": ("lead", "manage", "coordinate", "organize"),
    "physical": ("physical", "lifting", "outdoor", "manual", "construction"),
    "technical": ("computer", "technical", "software", "website", "digital"),
    "teaching": ("teach", "tutor", "education", "mentor", "training"),
    "creative": ("creative", "art", "design", "music", "writing"),
}

CAUSE_SKILLS: dict[str, tuple[str, ...]] = {
    "environment": ("environmental awareness", "outdoor activities"),
    "education": ("teaching", "mentoring"),
    "health": ("healthcare support", "empathy"),
    "community": ("community engagement", "social skills"),
    "animals": ("animal care", "compassion"),
}

DEFAULT_SKILL = "general volunteering"
DEFAULT_TIME_COMMITMENT = "Time commitment not specified"
DEFAULT_IMAGE = "/images/default-volunteer.jpg"
CAUSES_WITH_IMAGES = frozenset(
    {"environment", "education", "health", "community", "animals", "seniors", "children"}
)

PARTICIPANTS_PATTERN = re.compile(r"(\d+)\s*(volunteers?|people|participants?)")
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")

LONG_DESCRIPTION = 50


def normalize_text(value: str) -> str:
    """
    Normalize text for duplicate detection.

    Example:
        >>> normalize_text("  Beach   Clean-Up! ")
        'beach cleanup'
    """
    collapsed = _WHITESPACE.sub(" ", value.lower().strip())
    return _PUNCTUATION.sub("", collapsed)


def deduplication_key(opportunity: Opportunity) -> str:
    """Key under which two listings are considered the same opportunity."""
    return "|".join(
        normalize_text(part)
        for part in (opportunity.title, opportunity.organization, opportunity.location)
    )


def score_opportunity(opportunity: Opportunity) -> int:
    """
    Score a listing by data completeness and source reliability.

    Used to pick which of two duplicates to keep.
    """
    contact = opportunity.contact_info
    score = 0
    if len(opportunity.description) > LONG_DESCRIPTION:
        score += 2
    score += sum(1 for value in (contact.email, contact.phone, contact.website) if value)
    if opportunity.coordinates is not None:
        score += 1
    if opportunity.skills:
        score += 1
    if opportunity.image:
        score += 1
    if opportunity.verified:
        score += 2
    if opportunity.application_deadline is not None:
        score += 1
    return score + SOURCE_RELIABILITY.get(opportunity.source, DEFAULT_RELIABILITY)


def infer_skills(description: str, cause: str) -> tuple[str, ...]:
    """Guess the skills a listing needs from its description and cause."""
    text = description.lower()
    skills = [
        skill
        for skill, keywords in SKILL_KEYWORDS.items()
        if any(keyword in text for keyword in keywords)
    ]
    skills.extend(CAUSE_SKILLS.get(cause.lower(), ()))
    unique = tuple(dict.fromkeys(skills))
    return unique or (DEFAULT_SKILL,)


def estimate_participants(description: str) -> int:
    """
    Estimate how many volunteers a listing needs.

    Example:
        >>> estimate_participants("We need 12 volunteers to sort donations")
        12
        >>> estimate_participants("Join our team")
        10
    """
    text = description.lower()
    match = PARTICIPANTS_PATTERN.search(text)
    if match:
        return int(match.group(1))
    if "large group" in text or "many volunteers" in text:
        return 20
    if "small group" in text or "few volunteers" in text:
        return 5
    if "team" in text or "group" in text:
        return 10
    return 1


def default_image_for_cause(cause: str) -> str:
    """Return the placeholder image for a cause."""
    key = cause.lower()
    if key in CAUSES_WITH_IMAGES:
        return f"/images/default-{key}.jpg"
    return DEFAULT_IMAGE


def _collation_key(title: str) -> str:
    return locale.strxfrm(title.casefold())


def calculate_distances(
    opportunities: Iterable[Opportunity],
    search_location: Coordinates,
) -> list[Opportunity]:
    """
    Annotate in-person listings with their distance in miles.

    Virtual listings get no distance; listings without coordinates are
    returned unchanged.
    """
    annotated = []
    for opportunity in opportunities:
        if opportunity.is_virtual:
            annotated.append(dataclasses.replace(opportunity, distance=None))
        elif opportunity.coordinates is not None:
            distance = calculate_distance(search_location, opportunity.coordinates)
            annotated.append(dataclasses.replace(opportunity, distance=round(distance, 1)))
        else:
            annotated.append(opportunity)
    return annotated


def filter_by_distance(
    opportunities: Iterable[Opportunity],
    max_distance: float,
) -> list[Opportunity]:
    """Drop in-person listings farther than ``max_distance`` miles."""
    return [
        opportunity
        for opportunity in opportunities
        if opportunity.is_virtual
        or opportunity.distance is None
        or opportunity.distance <= max_distance
    ]


def deduplicate_opportunities(opportunities: Iterable[Opportunity]) -> list[Opportunity]:
    """
    Merge duplicate listings, keeping the better-scored one.

    The kept listing takes the position of the first occurrence; on equal
    scores the first occurrence wins.
    """
    kept: dict[str, Opportunity] = {}
    for opportunity in opportunities:
        key = deduplication_key(opportunity)
        existing = kept.get(key)
        if existing is None or score_opportunity(opportunity) > score_opportunity(existing):
            kept[key] = opportunity
    return list(kept.values())


def sort_by_distance(opportunities: Iterable[Opportunity]) -> list[Opportunity]:
    """
    Order listings for display.

    Virtual listings first by title, then in-person listings by ascending
    distance (unknown distances last), ties broken by title.
    """

    def sort_key(opportunity: Opportunity) -> tuple[int, float, str]:
        if opportunity.is_virtual:
            return (0, 0.0, _collation_key(opportunity.title))
        distance = opportunity.distance if opportunity.distance is not None else float("inf")
        return (1, distance, _collation_key(opportunity.title))

    return sorted(opportunities, key=sort_key)


def enrich_opportunity(opportunity: Opportunity, now: datetime) -> Opportunity:
    """Fill in missing skills, time commitment, participants, image and timestamp."""
    changes: dict[str, object] = {}
    if not opportunity.skills:
        changes["skills"] = infer_skills(opportunity.description, opportunity.cause)
    if not opportunity.time_commitment.strip():
        changes["time_commitment"] = DEFAULT_TIME_COMMITMENT
    if not opportunity.participants:
        changes["participants"] = estimate_participants(opportunity.description)
    if not opportunity.image:
        changes["image"] = default_image_for_cause(opportunity.cause)
    if opportunity.last_updated is None:
        changes["last_updated"] = now
    if not changes:
        return opportunity
    return dataclasses.replace(opportunity, **changes)


class ResultsProcessor:
    """
    Turns per-provider results into one display-ready list.

    Example:
        >>> processor = ResultsProcessor()
        >>> processed = processor.process_results(results, Coordinates(40.71, -74.0))
        >>> processed.stats.final_count
    """

    def __init__(self, default_options: ProcessingOptions | None = None) -> None:
        """Initialize with the options used when a call passes none."""
        self._default_options = default_options or ProcessingOptions()

    def process_results(
        self,
        results: Sequence[ProviderResult],
        search_location: Coordinates,
        options: ProcessingOptions | None = None,
    ) -> ProcessedResults:
        """
        Run the processing pipeline.

        Args:
            results: One result per provider; failed ones are ignored.
            search_location: Centre used for distances.
            options: Steps to run (defaults to the processor's defaults).

        Returns:
            The processed opportunities and processing statistics.
        """
        opts = options or self._default_options
        start = time.perf_counter()

        opportunities = [
            opportunity
            for result in results
            if result.success
            for opportunity in result.opportunities
        ]
        original_count = len(opportunities)

        if opts.enable_distance_calculation:
            opportunities = calculate_distances(opportunities, search_location)
            opportunities = filter_by_distance(opportunities, opts.max_distance)

        duplicates_removed = 0
        if opts.enable_deduplication:
            before = len(opportunities)
            opportunities = deduplicate_opportunities(opportunities)
            duplicates_removed = before - len(opportunities)

        enriched_count = 0
        if opts.enable_data_enrichment:
            now = datetime.now(UTC)
            enriched = [enrich_opportunity(opportunity, now) for opportunity in opportunities]
            enriched_count = sum(
                1 for before, after in zip(opportunities, enriched, strict=True) if before is not after
            )
            opportunities = enriched

        if opts.enable_distance_calculation:
            opportunities = sort_by_distance(opportunities)

        stats = ProcessingStats(
            original_count=original_count,
            duplicates_removed=duplicates_removed,
            enriched_count=enriched_count,
            final_count=len(opportunities),
            processing_time=time.perf_counter() - start,
        )
        logger.info(
            "Results processed",
            sources=len(results),
            original_count=original_count,
            duplicates_removed=duplicates_removed,
            final_count=stats.final_count,
        )
        return ProcessedResults(opportunities=opportunities, stats=stats)
