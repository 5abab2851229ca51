"""
Intent Classifier - advisory AI classification of participant intent
Uses an OpenAI chat model to read a participant's own words (bio, messages,
meeting notes) and return a probability per intent.
"""
import os
import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from config import get_classifier_settings
from errors import ClassificationError
from models import INTENT_KEYS, Participant

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are an intent classification engine for a B2B event matchmaking platform.

Given a participant's text (bio, messages, meeting notes), classify their intent into these categories with probability scores (0.0-1.0):

- buying: Looking to purchase products, services, or solutions
- selling: Promoting/offering products, services, or solutions
- investing: Looking to invest capital or find investment opportunities
- partnering: Seeking strategic partnerships, alliances, distribution deals
- learning: Wanting to gain knowledge, explore trends, attend workshops
- networking: Building connections, expanding professional network

Rules:
- Output ONLY valid JSON: {"buying":0.0,"selling":0.0,"investing":0.0,"partnering":0.0,"learning":0.0,"networking":0.0}
- Scores should roughly sum to 1.0
- Base your classification on explicit and implicit signals in the text
- If text is ambiguous, distribute scores more evenly
- Never output anything besides the JSON object"""


def build_classification_text(
    participant: Participant,
    messages: Optional[List[str]] = None,
    meeting_notes: Optional[List[str]] = None
) -> str:
    """Assemble the text the classifier sees, one labelled line per source"""
    parts = []
    if participant.bio:
        parts.append(f"Bio: {participant.bio}")
    if participant.title:
        parts.append(f"Title: {participant.title}")
    if participant.company_name:
        parts.append(f"Company: {participant.company_name}")
    if participant.industry:
        parts.append(f"Industry: {participant.industry}")
    if participant.looking_for:
        parts.append(f"Looking for: {participant.looking_for}")
    if participant.offering:
        parts.append(f"Offering: {participant.offering}")
    if messages:
        parts.append(f"Recent messages: {' | '.join(messages)}")
    if meeting_notes:
        parts.append(f"Meeting notes: {' | '.join(meeting_notes)}")
    return "\n".join(parts)


def parse_classification(content: Optional[str]) -> Dict[str, float]:
    """
    Validate and normalize a model response

    Every intent key must be present with a number in [0, 1]. The result is
    rescaled to sum to 1 (three decimals).

    Raises:
        ClassificationError: if the response is empty, not JSON, incomplete or all zero
    """
    if not content or not content.strip():
        raise ClassificationError("Empty classification response")

    try:
        parsed = json.loads(content.strip())
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Classification is not valid JSON: {e}")

    if not isinstance(parsed, dict):
        raise ClassificationError("Classification is not a JSON object")

    vector: Dict[str, float] = {}
    for key in INTENT_KEYS:
        value = parsed.get(key)
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 1:
            raise ClassificationError(f"Invalid score for '{key}': {value!r}")
        vector[key] = float(value)

    total = sum(vector.values())
    if total <= 0:
        raise ClassificationError("Classification gives no intent any weight")
    return {key: round(value / total, 3) for key, value in vector.items()}


class IntentClassifier:
    """Classify participant intent with an OpenAI chat model"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[OpenAI] = None):
        """
        Initialize the classifier

        Args:
            api_key: OpenAI API key (defaults to environment variable)
            client: Ready OpenAI client, used instead of api_key when given
        """
        settings = get_classifier_settings()
        self.model = settings['model']
        self.temperature = settings['temperature']
        self.max_tokens = settings['max_tokens']
        self.min_text_length = settings['min_text_length']

        if client is None:
            self.api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not self.api_key:
                raise ValueError("OpenAI API key is required. Set OPENAI_API_KEY environment variable.")
            client = OpenAI(api_key=self.api_key)

        self.client = client

    def classify_text(self, text: str) -> Dict[str, float]:
        """
        Classify one participant's text

        Returns:
            intent -> probability, summing to 1

        Raises:
            ClassificationError: on API failure or an unusable response
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": text}
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except Exception as e:
            raise ClassificationError(f"Classification request failed: {e}") from e

        choices = getattr(response, 'choices', None) or []
        content = choices[0].message.content if choices else None
        return parse_classification(content)

    def classify_participant(
        self,
        participant: Participant,
        interactions: Optional[Dict[str, Any]] = None
    ) -> Optional[Dict[str, float]]:
        """
        Classify a participant from their profile and event interactions

        Returns:
            The normalized classification, or None when there is too little text

        Raises:
            ClassificationError: on API failure or an unusable response
        """
        interactions = interactions or {}
        text = build_classification_text(
            participant,
            interactions.get('messages'),
            interactions.get('meeting_notes')
        )
        if len(text) < self.min_text_length:
            logger.info(f"Not enough text to classify participant {participant.id}")
            return None
        return self.classify_text(text)
