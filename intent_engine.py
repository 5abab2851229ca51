"""
Intent Engine - Computes intent vectors from participant signals

Intent taxonomy: buying, selling, investing, partnering, learning, networking.
Each participant gets a distribution over the taxonomy (weights sum to <= 1)
plus a 0-100 confidence. No signal at all yields an empty vector with
confidence 0, which scoring treats as "unknown".
"""
import math
import re
from typing import Dict, Iterable, List, Optional, Tuple

from models import INTENT_KEYS, IntentResult, Participant, clean_intents

MAX_CONFIDENCE = 95
PROFILE_SIGNAL_CONFIDENCE_CAP = 60
CONFIDENCE_PER_SIGNAL = 12
AI_CONFIDENCE_BONUS = 10

# Relative weight of each explicit signal source when merging
DECLARED_WEIGHT = 3.0
PROFILE_WEIGHT = 1.5
LOOKING_OFFERING_WEIGHT = 2.0

# Share of the final vector kept from the explicit side, by number of declared intents
EXPLICIT_SHARE_BY_COUNT = {0: 0.0, 1: 0.5, 2: 0.6, 3: 0.7}
EXPLICIT_SHARE_PER_FIELD = 0.05
EXPLICIT_SHARE_CAP = 0.9

# Minimum weight for an intent to count as held (noise from weak text signals is ignored)
SUPPORT_THRESHOLD = 0.1


def _signals(table: Iterable[Tuple[str, str, int]]) -> List[Tuple['re.Pattern', str, int]]:
    return [(re.compile(pattern, re.IGNORECASE), intent, weight) for pattern, intent, weight in table]


TITLE_SIGNALS = _signals([
    # Buying
    (r'\b(procurement|purchasing|sourcing|buyer|supply chain)\b', 'buying', 20),
    (r'\b(operations|logistics|category manager)\b', 'buying', 12),
    (r'\b(CTO|CIO|IT Director|IT Manager|tech lead)\b', 'buying', 8),
    # Selling
    (r'\b(sales|account executive|account manager|business development|BD)\b', 'selling', 20),
    (r'\b(marketing|growth|revenue|commercial)\b', 'selling', 12),
    (r'\b(founder|co-founder|CEO|managing director)\b', 'selling', 10),
    # Investing
    (r'\b(investor|venture|VC|angel|investment|portfolio|fund)\b', 'investing', 25),
    (r'\b(private equity|PE|capital|asset management)\b', 'investing', 20),
    # Partnering
    (r'\b(partnerships?|alliances|strategic|channel|ecosystem)\b', 'partnering', 20),
    (r'\b(business development|BD|expansion)\b', 'partnering', 10),
    # Learning
    (r'\b(student|researcher|academic|professor|analyst|junior|intern)\b', 'learning', 20),
    (r'\b(exploring|learning|curious)\b', 'learning', 15),
    # Networking
    (r'\b(consultant|advisor|freelance|independent|community)\b', 'networking', 15),
    (r'\b(HR|people|talent|recruiter|recruiting)\b', 'networking', 10),
])

BIO_SIGNALS = _signals([
    # Buying
    (r'\b(looking for|searching for|need|seeking)\s+(a\s+)?(supplier|vendor|solution|tool|platform|provider|service)', 'buying', 25),
    (r'\b(evaluating|comparing|reviewing)\s+(solutions|options|vendors|tools)', 'buying', 20),
    # Selling
    (r'\b(we (offer|provide|deliver|build|help)|our (solution|platform|product|service))\b', 'selling', 25),
    (r'\b(helping (companies|businesses|teams|organizations))\b', 'selling', 20),
    (r'\b(SaaS|B2B|platform|software|solution)\b', 'selling', 8),
    # Investing
    (r'\b(invest(ing|ment)?|fund(ing|ed)?|portfolio|deal flow|due diligence)\b', 'investing', 20),
    (r'\b(startup|seed|series [A-D]|raise|round)\b', 'investing', 12),
    # Partnering
    (r'\b(partner(ship|ing)?|collaborat(e|ion)|joint venture|alliance|distribution)\b', 'partnering', 20),
    (r'\b(looking for.{0,30}partner|open to.{0,30}collaborat)', 'partnering', 25),
    # Learning
    (r'\b(learn(ing)?|discover|explore|understand|research|study)\b', 'learning', 12),
    (r'\b(best practices|trends|insights|knowledge)\b', 'learning', 10),
    # Networking
    (r'\b(connect(ing)?|network(ing)?|meet(ing)?\s+(like-minded|people|professionals))\b', 'networking', 15),
    (r'\b(expand.{0,20}(network|connections)|build.{0,20}relationships)\b', 'networking', 15),
])


# ==========================================
# VECTOR HELPERS
# ==========================================

def normalize_vector(raw: Dict[str, float]) -> Dict[str, float]:
    """
    Normalize raw intent weights into a distribution.

    Weights are floored to three decimals so the sum never exceeds 1.
    Zero entries are dropped; no positive weight at all gives {}.
    """
    positive = {k: float(raw.get(k, 0.0)) for k in INTENT_KEYS if raw.get(k, 0.0) > 0}
    total = sum(positive.values())
    if total <= 0:
        return {}

    vector = {}
    for key, value in positive.items():
        weight = math.floor(value / total * 1000) / 1000
        if weight > 0:
            vector[key] = weight
    return vector


def _scan(patterns, text: Optional[str]) -> Tuple[Dict[str, float], int]:
    raw = {k: 0.0 for k in INTENT_KEYS}
    matched = 0
    if text:
        for pattern, intent, weight in patterns:
            if pattern.search(text):
                raw[intent] += weight
                matched += 1
    return raw, matched


# ==========================================
# SIGNAL SOURCES
# ==========================================

def from_explicit_intents(intents: Iterable[str]) -> IntentResult:
    """
    Declared intents: each gets an equal share.

    Confidence: 1 intent = 50, 2 = 65, 3 = 75
    """
    valid = clean_intents(list(intents or []))
    if not valid:
        return IntentResult()

    vector = normalize_vector({intent: 1.0 for intent in valid})
    confidence = min(50 + (len(valid) - 1) * 15, 75)
    return IntentResult(vector, confidence)


def from_profile_signals(title: Optional[str], text: Optional[str]) -> IntentResult:
    """Keyword signals from a job title and free text (bio, industry, looking for...)"""
    title_raw, title_hits = _scan(TITLE_SIGNALS, title)
    text_raw, text_hits = _scan(BIO_SIGNALS, text)

    raw = {k: title_raw[k] + text_raw[k] for k in INTENT_KEYS}
    hits = title_hits + text_hits
    if hits == 0:
        return IntentResult()

    confidence = min(hits * CONFIDENCE_PER_SIGNAL, PROFILE_SIGNAL_CONFIDENCE_CAP)
    return IntentResult(normalize_vector(raw), confidence)


def from_behavioral_signals(texts: Iterable[str]) -> IntentResult:
    """Intent from what a participant actually wrote (messages, meeting notes)"""
    joined = ' | '.join(t for t in texts or [] if t)
    return from_profile_signals(None, joined)


def merge_signals(signals: List[Tuple[IntentResult, float]]) -> IntentResult:
    """
    Merge signal sources into one vector.

    Each source contributes weight * confidence / 100; the merged confidence is
    the weighted average of the contributing confidences, capped at 95.
    """
    merged = {k: 0.0 for k in INTENT_KEYS}
    total_weight = 0.0
    confidence_sum = 0.0
    weight_sum = 0.0

    for result, weight in signals:
        if result.is_empty or result.confidence <= 0:
            continue
        effective = weight * result.confidence / 100
        for key, value in result.vector.items():
            merged[key] += value * effective
        total_weight += effective
        confidence_sum += result.confidence * weight
        weight_sum += weight

    if total_weight == 0:
        return IntentResult()

    confidence = min(round(confidence_sum / weight_sum), MAX_CONFIDENCE)
    return IntentResult(normalize_vector(merged), confidence)


def explicit_share(participant: Participant) -> float:
    """
    How much of the final vector the explicit side keeps when behavior is blended in.

    Grows with the number of declared intents and with each filled profile
    field (title, company, looking for, offering).
    """
    share = EXPLICIT_SHARE_BY_COUNT.get(len(participant.intents), EXPLICIT_SHARE_BY_COUNT[3])
    filled = sum(1 for value in (participant.title, participant.company_name,
                                 participant.looking_for, participant.offering) if value)
    return min(share + filled * EXPLICIT_SHARE_PER_FIELD, EXPLICIT_SHARE_CAP)


def blend_behavioral(
    explicit: IntentResult,
    behavioral: IntentResult,
    share: float,
    confidence_threshold: float
) -> IntentResult:
    """
    final = share * explicit + (1 - share) * behavioral

    Behavioral evidence below the confidence threshold has its share halved.
    """
    if behavioral.is_empty:
        return explicit
    if explicit.is_empty:
        return behavioral

    explicit_mix = share
    behavioral_mix = 1.0 - share
    if behavioral.confidence < confidence_threshold:
        behavioral_mix *= 0.5
    total = explicit_mix + behavioral_mix
    if total <= 0:
        return explicit

    raw = {
        k: (explicit_mix * explicit.vector.get(k, 0.0) + behavioral_mix * behavioral.vector.get(k, 0.0)) / total
        for k in INTENT_KEYS
    }
    confidence = (explicit_mix * explicit.confidence + behavioral_mix * behavioral.confidence) / total
    return IntentResult(normalize_vector(raw), min(round(confidence), MAX_CONFIDENCE))


# ==========================================
# PARTICIPANT VECTOR
# ==========================================

def explicit_intent(participant: Participant) -> IntentResult:
    """Merge declared intents with profile and looking-for/offering text signals"""
    signals: List[Tuple[IntentResult, float]] = []

    if participant.intents:
        signals.append((from_explicit_intents(participant.intents), DECLARED_WEIGHT))

    profile_text = '. '.join(t for t in (participant.bio, participant.industry) if t)
    profile_signal = from_profile_signals(participant.title or None, profile_text or None)
    if not profile_signal.is_empty:
        signals.append((profile_signal, PROFILE_WEIGHT))

    looking_offering = '. '.join(filter(None, [
        f"looking for {participant.looking_for}" if participant.looking_for else '',
        f"we offer {participant.offering}" if participant.offering else '',
    ]))
    if looking_offering:
        lo_signal = from_profile_signals(None, looking_offering)
        if not lo_signal.is_empty:
            signals.append((lo_signal, LOOKING_OFFERING_WEIGHT))

    return merge_signals(signals)


def compute_participant_intent(
    participant: Participant,
    interaction_texts: Optional[List[str]] = None,
    use_behavioral: bool = False,
    confidence_threshold: float = 0.0
) -> IntentResult:
    """
    Compute a participant's intent vector from every available signal.

    Args:
        participant: The participant (with profile fields)
        interaction_texts: Messages / meeting notes they wrote (behavioral signal)
        use_behavioral: Whether behavioral signal may be blended in (from rules)
        confidence_threshold: Behavioral confidence (0-100) below which it is down-weighted

    Returns:
        IntentResult; empty with confidence 0 when nothing contributed
    """
    result = explicit_intent(participant)

    if use_behavioral and interaction_texts:
        behavioral = from_behavioral_signals(interaction_texts)
        result = blend_behavioral(result, behavioral, explicit_share(participant), confidence_threshold)

    # AI classification is advisory: it raises confidence, never rewrites the vector
    if not result.is_empty and participant.ai_intent_classification:
        result = IntentResult(result.vector, min(result.confidence + AI_CONFIDENCE_BONUS, MAX_CONFIDENCE))

    return result


def resolve_intent(participant: Participant) -> IntentResult:
    """
    Intent used for scoring: the stored vector when compute-intents has run,
    otherwise computed on the fly from explicit signals.
    """
    if participant.intent_vector is not None:
        vector = {k: float(v) for k, v in (participant.intent_vector or {}).items()
                  if k in INTENT_KEYS and v and float(v) > 0}
        confidence = float(participant.intent_confidence or 0)
        if not vector:
            return IntentResult()
        return IntentResult(vector, confidence)
    return compute_participant_intent(participant)


def supported_intents(result: IntentResult) -> List[str]:
    """Intents carrying at least SUPPORT_THRESHOLD weight"""
    return [k for k in INTENT_KEYS if result.vector.get(k, 0.0) >= SUPPORT_THRESHOLD]
