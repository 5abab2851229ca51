"""
Match Generator - scores every eligible pair of an event's participants,
keeps each participant's best matches and stores them.

Scoring is a weighted sum of the sub-scores that could be computed for a pair
(intent, industry, interest, complementarity and, when enabled, embedding
similarity), followed by an optional sponsor/VIP boost, the event's minimum
score and a per-participant top-K cut.
"""
import logging
import time
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from config import get_intent_labels, get_max_candidates, get_max_match_reasons, get_priority_boost
from directory_service import DirectoryService
from errors import CandidateLimitError, MatchingConfigError
from intent_engine import resolve_intent
from models import ABSENT, IntentResult, MatchingRules, Participant, Present, ScoredMatch, SubScore
from scoring import EmbeddingIndex, peak_intent_pair, rule_based_scores, shared_topics
from utils.helpers import normalize_label, round_half_up

logger = logging.getLogger(__name__)

# Sub-score a factor needs before it is worth telling the participant about
STRONG_INTENT = 80
STRONG_COMPLEMENTARITY = 70
HIGH_SIMILARITY = 75
MAX_TOPICS_IN_REASON = 3
FALLBACK_REASON = "Complementary profiles"


# ==========================================
# PAIR ENUMERATION
# ==========================================

def iter_candidate_pairs(
    participants: Sequence[Participant],
    rules: MatchingRules
) -> Iterator[Tuple[Participant, Participant]]:
    """
    Yield each unordered pair once, lower id first, skipping excluded pairs

    Exclusions are checked before any scoring: self pairs, same company
    (when enabled, non-empty names only) and same role (when enabled,
    non-empty roles only).
    """
    ordered = sorted(participants, key=lambda p: p.id)
    companies = [normalize_label(p.company_name) for p in ordered]
    roles = [normalize_label(p.role) for p in ordered]

    for i, a in enumerate(ordered):
        for j in range(i + 1, len(ordered)):
            b = ordered[j]
            if a.id == b.id:
                continue
            if rules.exclude_same_company and companies[i] and companies[i] == companies[j]:
                continue
            if rules.exclude_same_role and roles[i] and roles[i] == roles[j]:
                continue
            yield a, b


# ==========================================
# AGGREGATION
# ==========================================

def aggregate_score(sub_scores: Dict[str, SubScore], weights: Dict[str, float]) -> Optional[int]:
    """
    Weighted average over the present sub-scores, rounded half-up to an integer

    Weights are renormalized per pair, so an absent sub-score hands its share
    to the others in proportion to their weights.

    None when no present sub-score carries weight.
    """
    total_weight = 0.0
    weighted_sum = 0.0
    for name, sub_score in sub_scores.items():
        weight = weights.get(name, 0.0)
        if not isinstance(sub_score, Present) or weight <= 0:
            continue
        total_weight += weight
        weighted_sum += weight * sub_score.value

    if total_weight <= 0:
        return None
    return int(round_half_up(weighted_sum / total_weight))


def apply_priority_boost(score: int, a: Participant, b: Participant, rules: MatchingRules) -> int:
    """Add the sponsor/VIP boost once when either side qualifies, capped at 100"""
    boosted = (
        (rules.prioritize_sponsors and (a.is_sponsor or b.is_sponsor))
        or (rules.prioritize_vip and (a.is_vip or b.is_vip))
    )
    if boosted:
        return min(score + get_priority_boost(), 100)
    return score


def build_match_reasons(
    a: Participant,
    b: Participant,
    intent_a: IntentResult,
    intent_b: IntentResult,
    sub_scores: Dict[str, SubScore]
) -> List[str]:
    """Human-readable reasons, strongest contributing factor first"""
    candidates: List[Tuple[float, str]] = []
    values = {name: s.value for name, s in sub_scores.items() if isinstance(s, Present)}

    # Name the pairing that set the peak of the intent score
    pair = peak_intent_pair(intent_a, intent_b)
    if pair and values.get('intent', 0) >= STRONG_INTENT:
        labels = get_intent_labels()
        ia, ib = pair
        candidates.append((
            values['intent'],
            f"{labels.get(ia, ia.title())} ↔ {labels.get(ib, ib.title())} intent match"
        ))

    industry = values.get('industry', 0)
    if industry >= 100:
        candidates.append((industry, f"Same industry: {a.industry}"))
    elif industry >= 70:
        candidates.append((industry, f"Related industries: {a.industry} & {b.industry}"))

    topics = shared_topics(a, b)
    if topics:
        candidates.append((values.get('interest', 0), f"Both interested in {', '.join(topics[:MAX_TOPICS_IN_REASON])}"))

    if values.get('complementarity', 0) >= STRONG_COMPLEMENTARITY:
        candidates.append((values['complementarity'], "Complementary company profiles"))

    if values.get('embedding', 0) >= HIGH_SIMILARITY:
        candidates.append((values['embedding'], "High AI profile similarity"))

    # sorted() is stable, so equal scores keep the order above
    ranked = sorted(candidates, key=lambda c: -c[0])
    reasons = [text for _, text in ranked[:get_max_match_reasons()]]
    return reasons or [FALLBACK_REASON]


def score_pair(
    a: Participant,
    b: Participant,
    intent_a: IntentResult,
    intent_b: IntentResult,
    rules: MatchingRules,
    embedding_index: Optional[EmbeddingIndex] = None
) -> Optional[ScoredMatch]:
    """
    Score one pair under the given rules (boost applied, threshold not)

    Returns None when nothing weighted could be scored for the pair.
    """
    if b.id < a.id:
        a, b, intent_a, intent_b = b, a, intent_b, intent_a

    rule_scores = rule_based_scores(a, b, intent_a, intent_b)
    sub_scores: Dict[str, SubScore] = {name: Present(value) for name, value in rule_scores.items()}
    if embedding_index is not None and rules.embedding_weight > 0:
        sub_scores['embedding'] = embedding_index.score(a.id, b.id)
    else:
        sub_scores['embedding'] = ABSENT

    score = aggregate_score(sub_scores, rules.weights)
    if score is None:
        return None
    score = apply_priority_boost(score, a, b, rules)

    return ScoredMatch(
        participant_a_id=a.id,
        participant_b_id=b.id,
        intent_score=rule_scores['intent'],
        industry_score=rule_scores['industry'],
        interest_score=rule_scores['interest'],
        complementarity_score=rule_scores['complementarity'],
        embedding_score=sub_scores['embedding'],
        score=score,
        match_reasons=build_match_reasons(a, b, intent_a, intent_b, sub_scores),
    )


# ==========================================
# RANKING
# ==========================================

def select_top_matches(matches: Sequence[ScoredMatch], max_recommendations: int) -> List[ScoredMatch]:
    """
    Keep a pair when it is in either participant's top `max_recommendations`

    Each participant's candidates are ranked by score (highest first), then by
    the other participant's id. Result is ordered by score, then pair key.
    """
    by_participant: Dict[str, List[Tuple[int, str, ScoredMatch]]] = {}
    for match in matches:
        by_participant.setdefault(match.participant_a_id, []).append((match.score, match.participant_b_id, match))
        by_participant.setdefault(match.participant_b_id, []).append((match.score, match.participant_a_id, match))

    kept: Dict[Tuple[str, str], ScoredMatch] = {}
    for candidates in by_participant.values():
        candidates.sort(key=lambda c: (-c[0], c[1]))
        for _, _, match in candidates[:max_recommendations]:
            kept[match.key] = match

    return sorted(kept.values(), key=lambda m: (-m.score, m.key))


# ==========================================
# GENERATION RUN
# ==========================================

class MatchGenerator:
    """Generate and store an event's match recommendations"""

    def __init__(self, directory_service: Optional[DirectoryService] = None):
        self._directory_service = directory_service

    @property
    def directory_service(self) -> DirectoryService:
        if self._directory_service is None:
            self._directory_service = DirectoryService(use_admin=True)
        return self._directory_service

    def load_rules(self, event_id: str) -> MatchingRules:
        """
        Snapshot the event's matching rules

        Raises:
            MatchingConfigError: if the event has no rules row or it is invalid
        """
        row = self.directory_service.get_matching_rules(event_id)
        if not row:
            raise MatchingConfigError(f"No matching rules configured for event {event_id}")
        return MatchingRules.from_row(row, event_id)

    def score_event(
        self,
        participants: Sequence[Participant],
        rules: MatchingRules,
        embedding_index: Optional[EmbeddingIndex] = None
    ) -> Tuple[List[ScoredMatch], int]:
        """
        Score all eligible pairs and keep those at or above the minimum score

        Returns:
            (qualifying matches, number of pairs scored)
        """
        intents = {p.id: resolve_intent(p) for p in participants}
        qualifying: List[ScoredMatch] = []
        pairs_scored = 0

        for a, b in iter_candidate_pairs(participants, rules):
            match = score_pair(a, b, intents[a.id], intents[b.id], rules, embedding_index)
            pairs_scored += 1
            if match is not None and match.score >= rules.minimum_score:
                qualifying.append(match)

        return qualifying, pairs_scored

    def generate_matches(self, event_id: str) -> Dict[str, int]:
        """
        Generate, rank and store match recommendations for one event

        Existing matches keep their status; pairs that no longer qualify are
        left in place and counted as stale.

        Returns:
            Dict with created, updated, stale, participants, pairs_scored and matches counts

        Raises:
            MatchingConfigError: if the event has no usable matching rules
            CandidateLimitError: if the event has more approved participants than allowed
        """
        start_time = time.time()
        rules = self.load_rules(event_id)

        participants = [Participant.from_row(r) for r in self.directory_service.get_approved_participants(event_id)]
        max_candidates = get_max_candidates()
        if len(participants) > max_candidates:
            raise CandidateLimitError(
                f"Event {event_id} has {len(participants)} approved participants; the limit is {max_candidates}"
            )

        logger.info(f"Generating matches for {len(participants)} participants in event {event_id}")

        embedding_index = None
        if rules.embedding_weight > 0 and participants:
            embedding_index = EmbeddingIndex(
                self.directory_service.get_profile_embeddings([p.id for p in participants])
            )
            logger.info(f"Loaded {len(embedding_index)} embeddings")

        qualifying, pairs_scored = self.score_event(participants, rules, embedding_index)
        selected = select_top_matches(qualifying, rules.max_recommendations)
        logger.info(
            f"Scored {pairs_scored} pairs: {len(qualifying)} above minimum score, "
            f"{len(selected)} kept after top-{rules.max_recommendations} selection"
        )

        existing_keys = self.directory_service.get_match_keys(event_id)
        saved = self.directory_service.save_matches([m.to_row(event_id) for m in selected], existing_keys)
        if saved['failed']:
            logger.error(f"{saved['failed']} matches could not be saved")
        if saved['existing']:
            logger.info(f"{saved['existing']} new matches were already stored by another run")

        stale = len(existing_keys - {m.key for m in selected})
        elapsed = time.time() - start_time
        logger.info(
            f"Match generation complete in {elapsed:.1f}s: {saved['created']} created, "
            f"{saved['updated']} updated, {stale} stale"
        )

        return {
            'created': saved['created'],
            'updated': saved['updated'],
            'stale': stale,
            'participants': len(participants),
            'pairs_scored': pairs_scored,
            'matches': len(selected),
        }
