"""
Domain types for the matching engine

Rows come out of Supabase as plain dicts; these dataclasses give the scoring
code a fixed shape with every missing value already defaulted.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from config import get_default_rules
from errors import MatchingConfigError, InvalidStatusTransition

INTENT_KEYS = ('buying', 'selling', 'investing', 'partnering', 'learning', 'networking')
MAX_DECLARED_INTENTS = 3

STATUS_PENDING = 'pending'
STATUS_SAVED = 'saved'
STATUS_DISMISSED = 'dismissed'
STATUS_ACCEPTED = 'accepted'
MATCH_STATUSES = (STATUS_PENDING, STATUS_SAVED, STATUS_DISMISSED, STATUS_ACCEPTED)

# Allowed status changes; 'accepted' only comes from the meeting-acceptance flow
STATUS_TRANSITIONS = {
    STATUS_PENDING: {STATUS_SAVED, STATUS_DISMISSED, STATUS_ACCEPTED},
    STATUS_SAVED: {STATUS_ACCEPTED},
    STATUS_DISMISSED: set(),
    STATUS_ACCEPTED: set(),
}


def validate_status_transition(current: str, new: str) -> None:
    """Raise InvalidStatusTransition unless current -> new is allowed"""
    if new not in MATCH_STATUSES:
        raise InvalidStatusTransition(f"Unknown match status: {new}")
    if new not in STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransition(f"Cannot move match from '{current}' to '{new}'")


# ==========================================
# SUB-SCORE RESULT
# ==========================================

@dataclass(frozen=True)
class Present:
    """A computed sub-score in [0, 100]"""
    value: float


class Absent:
    """A sub-score that could not be computed (missing data); carries no weight"""

    def __repr__(self):
        return 'ABSENT'

    def __eq__(self, other):
        return isinstance(other, Absent)

    def __hash__(self):
        return hash('ABSENT')


ABSENT = Absent()
SubScore = Union[Present, Absent]


# ==========================================
# INTENT
# ==========================================

@dataclass(frozen=True)
class IntentResult:
    """Intent distribution plus confidence (0-100). Empty vector means unknown."""
    vector: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0

    @property
    def is_empty(self) -> bool:
        return not self.vector

    def primary_intent(self) -> Optional[str]:
        """Highest-weighted intent, ties broken by enum order"""
        if not self.vector:
            return None
        return max(INTENT_KEYS, key=lambda k: (self.vector.get(k, 0.0), -INTENT_KEYS.index(k)))


def clean_intents(values: Any) -> List[str]:
    """Keep known intent values, de-duplicated, at most three, in declared order"""
    if isinstance(values, str):
        values = [values]
    cleaned: List[str] = []
    for value in values or []:
        key = str(value).strip().lower()
        if key in INTENT_KEYS and key not in cleaned:
            cleaned.append(key)
    return cleaned[:MAX_DECLARED_INTENTS]


# ==========================================
# PARTICIPANT
# ==========================================

def _as_list(value: Any) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(',') if v.strip())
    return tuple(str(v).strip() for v in value if v is not None and str(v).strip())


def _as_text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


@dataclass(frozen=True)
class Participant:
    """One user's registration in one event, joined with their profile"""
    id: str
    role: str = ''
    status: str = 'pending'
    intents: Tuple[str, ...] = ()
    looking_for: str = ''
    offering: str = ''
    tags: Tuple[str, ...] = ()
    is_sponsor: bool = False
    is_vip: bool = False
    full_name: str = ''
    title: str = ''
    company_name: str = ''
    company_size: str = ''
    company_website: str = ''
    industry: str = ''
    expertise_areas: Tuple[str, ...] = ()
    interests: Tuple[str, ...] = ()
    bio: str = ''
    intent_vector: Optional[Dict[str, float]] = None
    intent_confidence: Optional[float] = None
    ai_intent_classification: Optional[Dict[str, float]] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Participant':
        """Build from a `participants` row with its joined `profiles` record"""
        profile = row.get('profiles') or {}
        if isinstance(profile, list):
            profile = profile[0] if profile else {}

        intents = clean_intents(row.get('intents'))
        if not intents and row.get('intent'):
            intents = clean_intents([row.get('intent')])

        return cls(
            id=str(row['id']),
            role=_as_text(row.get('role')),
            status=_as_text(row.get('status')) or 'pending',
            intents=tuple(intents),
            looking_for=_as_text(row.get('looking_for')),
            offering=_as_text(row.get('offering')),
            tags=_as_list(row.get('tags')),
            is_sponsor=bool(row.get('is_sponsor')),
            is_vip=bool(row.get('is_vip')),
            full_name=_as_text(profile.get('full_name')),
            title=_as_text(profile.get('title')),
            company_name=_as_text(profile.get('company_name')),
            company_size=_as_text(profile.get('company_size')),
            company_website=_as_text(profile.get('company_website')),
            industry=_as_text(profile.get('industry')),
            expertise_areas=_as_list(profile.get('expertise_areas')),
            interests=_as_list(profile.get('interests')),
            bio=_as_text(profile.get('bio')),
            intent_vector=row.get('intent_vector'),
            intent_confidence=row.get('intent_confidence'),
            ai_intent_classification=row.get('ai_intent_classification') or None,
        )


# ==========================================
# MATCHING RULES
# ==========================================

WEIGHT_FIELDS = ('intent', 'industry', 'interest', 'complementarity', 'embedding')


def as_percentage(value: float) -> float:
    """Fractions below 1 (0.4) are stored by the organizer UI; treat them as 40%"""
    value = float(value)
    if 0 < value < 1:
        return value * 100
    return value


@dataclass(frozen=True)
class MatchingRules:
    """Immutable snapshot of one event's matching configuration"""
    event_id: str
    intent_weight: float
    industry_weight: float
    interest_weight: float
    complementarity_weight: float
    embedding_weight: float
    minimum_score: float
    max_recommendations: int
    exclude_same_company: bool
    exclude_same_role: bool
    prioritize_sponsors: bool
    prioritize_vip: bool
    use_behavioral_intent: bool
    intent_confidence_threshold: float

    @classmethod
    def from_row(cls, row: Dict[str, Any], event_id: Optional[str] = None) -> 'MatchingRules':
        """
        Build a validated snapshot from a `matching_rules` row

        Null columns take the configured defaults. Weights need not sum to 1,
        but they must be non-negative and the rule-based ones must not all be 0.

        Raises:
            MatchingConfigError: if any value is unusable
        """
        defaults = get_default_rules()
        values = {key: row.get(key) if row.get(key) is not None else default
                  for key, default in defaults.items()}

        try:
            weights = {name: float(values[f'{name}_weight']) for name in WEIGHT_FIELDS}
            minimum_score = as_percentage(values['minimum_score'])
            threshold = as_percentage(values['intent_confidence_threshold'])
            max_recommendations = int(values['max_recommendations'])
        except (TypeError, ValueError) as e:
            raise MatchingConfigError(f"Invalid matching rules: {e}")

        negative = [name for name, weight in weights.items() if weight < 0]
        if negative:
            raise MatchingConfigError(f"Matching weights cannot be negative: {', '.join(negative)}")
        if sum(weights.values()) <= 0:
            raise MatchingConfigError("At least one matching weight must be positive")
        if max_recommendations < 1:
            raise MatchingConfigError("max_recommendations must be at least 1")

        return cls(
            event_id=str(event_id or row.get('event_id') or ''),
            intent_weight=weights['intent'],
            industry_weight=weights['industry'],
            interest_weight=weights['interest'],
            complementarity_weight=weights['complementarity'],
            embedding_weight=weights['embedding'],
            minimum_score=minimum_score,
            max_recommendations=max_recommendations,
            exclude_same_company=bool(values['exclude_same_company']),
            exclude_same_role=bool(values['exclude_same_role']),
            prioritize_sponsors=bool(values['prioritize_sponsors']),
            prioritize_vip=bool(values['prioritize_vip']),
            use_behavioral_intent=bool(values['use_behavioral_intent']),
            intent_confidence_threshold=threshold,
        )

    @property
    def weights(self) -> Dict[str, float]:
        return {name: getattr(self, f'{name}_weight') for name in WEIGHT_FIELDS}


# ==========================================
# MATCH
# ==========================================

@dataclass
class ScoredMatch:
    """A scored unordered pair; participant_a_id < participant_b_id"""
    participant_a_id: str
    participant_b_id: str
    intent_score: float
    industry_score: float
    interest_score: float
    complementarity_score: float
    embedding_score: SubScore
    score: int
    match_reasons: List[str] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.participant_a_id, self.participant_b_id)

    def to_row(self, event_id: str) -> Dict[str, Any]:
        """Row for the `matches` table, without `status` (never overwritten here)"""
        return {
            'event_id': event_id,
            'participant_a_id': self.participant_a_id,
            'participant_b_id': self.participant_b_id,
            'score': self.score,
            'intent_score': self.intent_score,
            'industry_score': self.industry_score,
            'interest_score': self.interest_score,
            'complementarity_score': self.complementarity_score,
            'embedding_score': self.embedding_score.value if isinstance(self.embedding_score, Present) else None,
            'match_reasons': list(self.match_reasons),
        }
