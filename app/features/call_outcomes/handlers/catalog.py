"""
Outcome catalog: display metadata, category and scoring rule per OutcomeType.

Score deltas are additive on top of the user's current score. Lower scores
mean higher calling urgency; 200 is the conversion ceiling.
"""

from dataclasses import dataclass

from ..domain.errors import ScoringDegraded
from ..domain.models import (
    ConversionType,
    OutcomeCategory,
    OutcomeType,
    ScoringRule,
)


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    display_name: str
    description: str
    category: OutcomeCategory
    scoring_rule: ScoringRule
    conversion_type: ConversionType | None = None


OUTCOME_CATALOG: dict[OutcomeType, CatalogEntry] = {
    OutcomeType.COMPLETED_FORM: CatalogEntry(
        display_name="Completed Form",
        description="Customer completed their form during the call",
        category=OutcomeCategory.POSITIVE,
        scoring_rule=ScoringRule(
            score_delta=0,
            triggers_conversion=True,
            description="Form completed - no score change, user leaves the queue",
        ),
        conversion_type=ConversionType.COMPLETED,
    ),
    OutcomeType.GOING_TO_COMPLETE: CatalogEntry(
        display_name="Going to Complete",
        description="Customer committed to completing their form",
        category=OutcomeCategory.POSITIVE,
        scoring_rule=ScoringRule(
            score_delta=3,
            triggers_conversion=False,
            description="Customer committed - add 3 to current score",
        ),
    ),
    OutcomeType.MIGHT_COMPLETE: CatalogEntry(
        display_name="Might Complete",
        description="Customer showed interest but made no firm commitment",
        category=OutcomeCategory.POSITIVE,
        scoring_rule=ScoringRule(
            score_delta=3,
            triggers_conversion=False,
            description="Customer showed interest - add 3 to current score",
        ),
    ),
    OutcomeType.CALL_BACK: CatalogEntry(
        display_name="Callback Requested",
        description="Customer asked to be called back at a specific time",
        category=OutcomeCategory.POSITIVE,
        scoring_rule=ScoringRule(
            score_delta=3,
            triggers_conversion=False,
            description="Callback requested - add 3 to current score",
        ),
    ),
    OutcomeType.MISSED_CALL: CatalogEntry(
        display_name="Missed Call",
        description="Customer called us but we missed it",
        category=OutcomeCategory.POSITIVE,
        scoring_rule=ScoringRule(
            score_delta=0,
            triggers_conversion=False,
            description="Customer called us - no score change, immediate callback scheduled",
        ),
    ),
    OutcomeType.NO_ANSWER: CatalogEntry(
        display_name="No Answer",
        description="Phone rang but nobody answered",
        category=OutcomeCategory.NEUTRAL,
        scoring_rule=ScoringRule(
            score_delta=10,
            triggers_conversion=False,
            description="No answer - slightly harder to reach",
        ),
    ),
    OutcomeType.HUNG_UP: CatalogEntry(
        display_name="Hung Up",
        description="Customer ended the call early",
        category=OutcomeCategory.NEUTRAL,
        scoring_rule=ScoringRule(
            score_delta=25,
            triggers_conversion=False,
            description="Customer hung up - lower priority",
        ),
    ),
    OutcomeType.BAD_NUMBER: CatalogEntry(
        display_name="Bad Number",
        description="Number is invalid, disconnected or belongs to someone else",
        category=OutcomeCategory.NEGATIVE,
        scoring_rule=ScoringRule(
            score_delta=50,
            triggers_conversion=False,
            description="Invalid number - significant problem",
        ),
    ),
    OutcomeType.NOT_INTERESTED: CatalogEntry(
        display_name="Not Interested",
        description="Customer is not interested in proceeding",
        category=OutcomeCategory.NEGATIVE,
        scoring_rule=ScoringRule(
            score_delta=100,
            triggers_conversion=False,
            description="Not interested - major priority decrease",
        ),
    ),
    OutcomeType.NO_CLAIM: CatalogEntry(
        display_name="No Claim",
        description="Customer has no valid claim",
        category=OutcomeCategory.NEGATIVE,
        scoring_rule=ScoringRule(
            score_delta=200,
            triggers_conversion=True,
            description="No valid claim - remove from queue",
        ),
        conversion_type=ConversionType.NO_LONGER_ELIGIBLE,
    ),
    OutcomeType.DO_NOT_CONTACT: CatalogEntry(
        display_name="Do Not Contact",
        description="Customer explicitly requested not to be contacted (opt-out)",
        category=OutcomeCategory.ADMINISTRATIVE,
        scoring_rule=ScoringRule(
            score_delta=200,
            triggers_conversion=True,
            description="Customer opted out - remove from all queues immediately",
        ),
        conversion_type=ConversionType.OPTED_OUT,
    ),
}


def get_catalog_entry(outcome_type: str | OutcomeType) -> CatalogEntry:
    """Catalog lookup that degrades rather than rejects: raises ScoringDegraded."""
    try:
        return OUTCOME_CATALOG[OutcomeType(outcome_type)]
    except (ValueError, KeyError):
        raise ScoringDegraded(str(outcome_type)) from None


def get_scoring_rule(outcome_type: str | OutcomeType) -> ScoringRule:
    return get_catalog_entry(outcome_type).scoring_rule


def triggers_conversion(outcome_type: str | OutcomeType | None) -> bool:
    """False for missing or unknown outcomes."""
    if not outcome_type:
        return False
    try:
        return get_scoring_rule(outcome_type).triggers_conversion
    except ScoringDegraded:
        return False
