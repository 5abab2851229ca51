"""
Pair scoring - rule-based sub-scores and embedding similarity

Every function here is pure and returns a defined value for any input,
including participants with no data at all.
"""
import re
from typing import Dict, List, Optional, Tuple

from config import get_company_size_buckets, get_industry_adjacency, get_intent_compatibility
from intent_engine import supported_intents
from models import ABSENT, INTENT_KEYS, IntentResult, Participant, Present, SubScore
from utils.helpers import extract_keywords, label_map, normalize_label, ordered_pair, round_half_up

NEUTRAL_SCORE = 50.0

# Industry
INDUSTRY_MATCH = 100.0
INDUSTRY_ADJACENT = 70.0
INDUSTRY_DIFFERENT = 40.0

# Complementarity
COMPLEMENTARITY_BASE = 50.0
SIZE_STEP_BONUS = 5.0
MAX_SIZE_STEPS = 3
COMPLEMENTARY_INTENT_BONUS = 20.0
DIFFERENT_INTENT_BONUS = 10.0
DIFFERENT_ROLE_BONUS = 10.0
NEED_OFFER_BONUS = 10.0
COMPLEMENTARY_INTENT_MIN = 80

# Intent: blend of the strongest single pairing and the expected pairing
PEAK_SHARE = 0.6
BASE_SHARE = 0.4


# ==========================================
# INTENT
# ==========================================

def intent_compatibility(intent_a: str, intent_b: str) -> int:
    """Table value (0-100) for one intent pairing"""
    return get_intent_compatibility().get(intent_a, {}).get(intent_b, 30)


def held_intents(result: IntentResult) -> List[str]:
    """Supported intents, or every intent present when none reaches the support threshold"""
    return supported_intents(result) or [k for k in INTENT_KEYS if k in result.vector]


def peak_intent_pair(a: IntentResult, b: IntentResult) -> Optional[Tuple[str, str]]:
    """
    The held pairing with the highest table value, or None when either side is unknown

    max() keeps the first of equal pairings, so ties go to intent order.
    """
    pairs = [(ia, ib) for ia in held_intents(a) for ib in held_intents(b)]
    if not pairs:
        return None
    return max(pairs, key=lambda p: intent_compatibility(*p))


def intent_score(a: IntentResult, b: IntentResult) -> float:
    """
    Complementary-fit score between two intent vectors.

    Unknown intent on either side gives the neutral score. Otherwise
    raw = 0.6 * peak + 0.4 * base, where peak is the best table value among the
    intents each side holds and base is a^T * M * b. The result is pulled
    toward neutral when either side's confidence is low.
    """
    pair = peak_intent_pair(a, b)
    if pair is None:
        return NEUTRAL_SCORE

    peak = intent_compatibility(*pair)

    base = 0.0
    for ia, wa in a.vector.items():
        for ib, wb in b.vector.items():
            base += wa * intent_compatibility(ia, ib) * wb

    raw = PEAK_SHARE * peak + BASE_SHARE * base
    k = min(a.confidence, b.confidence) / 100
    score = NEUTRAL_SCORE + (raw - NEUTRAL_SCORE) * (0.5 + 0.5 * max(0.0, min(k, 1.0)))
    return max(0.0, min(100.0, score))


# ==========================================
# INDUSTRY
# ==========================================

def industries_adjacent(industry_a: str, industry_b: str) -> bool:
    """True when either industry lists the other as related"""
    adjacency = get_industry_adjacency()
    a, b = normalize_label(industry_a), normalize_label(industry_b)
    return b in adjacency.get(a, []) or a in adjacency.get(b, [])


def industry_score(industry_a: Optional[str], industry_b: Optional[str]) -> float:
    """100 same industry, 50 unknown, 70 related, 40 different"""
    a, b = normalize_label(industry_a), normalize_label(industry_b)
    if not a or not b:
        return NEUTRAL_SCORE
    if a == b:
        return INDUSTRY_MATCH
    if industries_adjacent(a, b):
        return INDUSTRY_ADJACENT
    return INDUSTRY_DIFFERENT


# ==========================================
# INTERESTS
# ==========================================

def topic_labels(participant: Participant) -> Dict[str, str]:
    """Expertise areas and interests as one normalized set (with display forms)"""
    return label_map(list(participant.expertise_areas) + list(participant.interests))


def shared_topics(a: Participant, b: Participant) -> List[str]:
    """Display names of topics both participants list, in a's order"""
    topics_b = topic_labels(b)
    return [display for key, display in topic_labels(a).items() if key in topics_b]


def interest_score(a: Participant, b: Participant) -> float:
    """
    Overlap of (expertise ∪ interests), normalized by the smaller set.

    Normalizing by the smaller set keeps a heavily tagged profile from
    diluting a sparse one. Either set empty gives the neutral score.
    """
    topics_a, topics_b = topic_labels(a), topic_labels(b)
    if not topics_a or not topics_b:
        return NEUTRAL_SCORE

    overlap = len(set(topics_a) & set(topics_b))
    return overlap / min(len(topics_a), len(topics_b)) * 100


# ==========================================
# COMPLEMENTARITY
# ==========================================

def company_size_index(size: Optional[str]) -> Optional[int]:
    """Position of a company size in the configured buckets (None if unknown)"""
    value = re.sub(r'\s+|employees?', '', normalize_label(size))
    if not value:
        return None
    buckets = [re.sub(r'\s+', '', b.lower()) for b in get_company_size_buckets()]
    if value in buckets:
        return buckets.index(value)
    return None


def needs_met(seeker: Participant, provider: Participant) -> bool:
    """Does any keyword of what `seeker` is looking for appear in what `provider` offers?"""
    wanted = extract_keywords(seeker.looking_for)
    offered = extract_keywords(provider.offering)
    return bool(wanted & offered)


def complementarity_score(
    a: Participant,
    b: Participant,
    intent_a: IntentResult,
    intent_b: IntentResult
) -> float:
    """
    How well two participants complement each other (0-100).

    Starts at 50; adds for company-size distance, asymmetric primary intents
    (buyer/seller beats two identical intents), different event roles, and
    each direction where one side offers what the other is looking for.
    """
    score = COMPLEMENTARITY_BASE

    size_a, size_b = company_size_index(a.company_size), company_size_index(b.company_size)
    if size_a is not None and size_b is not None:
        score += min(abs(size_a - size_b), MAX_SIZE_STEPS) * SIZE_STEP_BONUS

    primary_a, primary_b = intent_a.primary_intent(), intent_b.primary_intent()
    if primary_a and primary_b and primary_a != primary_b:
        if intent_compatibility(primary_a, primary_b) >= COMPLEMENTARY_INTENT_MIN:
            score += COMPLEMENTARY_INTENT_BONUS
        else:
            score += DIFFERENT_INTENT_BONUS

    role_a, role_b = normalize_label(a.role), normalize_label(b.role)
    if role_a and role_b and role_a != role_b:
        score += DIFFERENT_ROLE_BONUS

    if needs_met(a, b):
        score += NEED_OFFER_BONUS
    if needs_met(b, a):
        score += NEED_OFFER_BONUS

    return min(score, 100.0)


# ==========================================
# EMBEDDINGS
# ==========================================

def similarity_to_score(similarity: float) -> float:
    """Rescale cosine similarity from [-1, 1] to [0, 100]"""
    return max(0.0, min(100.0, (similarity + 1) / 2 * 100))


class EmbeddingIndex:
    """
    Cached embedding vectors for one generation run.

    Norms are computed once per participant and each pair's similarity once,
    so a pair lookup is a single dot product at most.
    """

    def __init__(self, embeddings: Optional[Dict[str, List[float]]] = None):
        self._vectors: Dict[str, List[float]] = {}
        self._norms: Dict[str, float] = {}
        self._cache: Dict[Tuple[str, str], SubScore] = {}

        for participant_id, vector in (embeddings or {}).items():
            if not vector:
                continue
            norm = sum(x * x for x in vector) ** 0.5
            if norm == 0:
                continue
            self._vectors[participant_id] = vector
            self._norms[participant_id] = norm

    def __len__(self):
        return len(self._vectors)

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._vectors

    def score(self, id_a: str, id_b: str) -> SubScore:
        """Embedding sub-score for a pair, ABSENT if either side has no usable vector"""
        key = ordered_pair(id_a, id_b)
        if key in self._cache:
            return self._cache[key]

        vec_a, vec_b = self._vectors.get(id_a), self._vectors.get(id_b)
        if vec_a is None or vec_b is None or len(vec_a) != len(vec_b):
            result: SubScore = ABSENT
        else:
            dot_product = sum(x * y for x, y in zip(vec_a, vec_b))
            similarity = dot_product / (self._norms[id_a] * self._norms[id_b])
            result = Present(round_half_up(similarity_to_score(similarity), 2))

        self._cache[key] = result
        return result


# ==========================================
# PAIR
# ==========================================

def rule_based_scores(
    a: Participant,
    b: Participant,
    intent_a: IntentResult,
    intent_b: IntentResult
) -> Dict[str, float]:
    """All four rule-based sub-scores for a pair, rounded to two decimals"""
    return {
        'intent': round_half_up(intent_score(intent_a, intent_b), 2),
        'industry': round_half_up(industry_score(a.industry, b.industry), 2),
        'interest': round_half_up(interest_score(a, b), 2),
        'complementarity': round_half_up(complementarity_score(a, b, intent_a, intent_b), 2),
    }

