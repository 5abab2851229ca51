"""
Intent Service - batch intent inference for an event
Computes and stores intent vectors, runs the optional AI classifier and
reports intent coverage for organizers.
"""
import logging
from typing import Any, Dict, List, Optional

from directory_service import DirectoryService
from errors import ClassificationError
from intent_classifier import IntentClassifier
from intent_engine import compute_participant_intent
from models import MatchingRules, Participant

logger = logging.getLogger(__name__)


class IntentService:
    """Run intent inference over every approved participant of an event"""

    def __init__(
        self,
        directory_service: Optional[DirectoryService] = None,
        classifier: Optional[IntentClassifier] = None
    ):
        self._directory_service = directory_service
        self._classifier = classifier

    @property
    def directory_service(self) -> DirectoryService:
        if self._directory_service is None:
            self._directory_service = DirectoryService(use_admin=True)
        return self._directory_service

    @property
    def classifier(self) -> IntentClassifier:
        if self._classifier is None:
            self._classifier = IntentClassifier()
        return self._classifier

    def _load_rules(self, event_id: str) -> MatchingRules:
        """Event rules, or the configured defaults when none are saved yet"""
        row = self.directory_service.get_matching_rules(event_id)
        return MatchingRules.from_row(row or {}, event_id)

    def _load_participants(self, event_id: str) -> List[Participant]:
        return [Participant.from_row(r) for r in self.directory_service.get_approved_participants(event_id)]

    def compute_intents(self, event_id: str) -> Dict[str, Any]:
        """
        Compute and store the intent vector of every approved participant

        Behavioral signal (messages, meeting notes) is only collected when the
        event's rules enable it. One participant failing never stops the batch.

        Returns:
            Dict with classified (stored a non-empty vector), total and failed counts
        """
        rules = self._load_rules(event_id)
        participants = self._load_participants(event_id)
        logger.info(f"Computing intents for {len(participants)} participants in event {event_id}")

        interactions: Dict[str, Dict[str, List[str]]] = {}
        if rules.use_behavioral_intent and participants:
            interactions = self.directory_service.get_interaction_texts(event_id, [p.id for p in participants])

        classified = 0
        failed = 0
        for participant in participants:
            texts = interactions.get(participant.id, {})
            try:
                result = compute_participant_intent(
                    participant,
                    interaction_texts=texts.get('messages', []) + texts.get('meeting_notes', []),
                    use_behavioral=rules.use_behavioral_intent,
                    confidence_threshold=rules.intent_confidence_threshold
                )
            except Exception as e:
                logger.error(f"Intent computation failed for participant {participant.id}: {e}")
                failed += 1
                continue

            saved = self.directory_service.update_participant_intent(
                participant.id, result.vector, int(result.confidence)
            )
            if not saved['success']:
                logger.error(f"Failed to store intent for participant {participant.id}: {saved.get('error')}")
                failed += 1
                continue
            if not result.is_empty:
                classified += 1

        logger.info(f"Intents computed: {classified}/{len(participants)} ({failed} failed)")
        return {'classified': classified, 'total': len(participants), 'failed': failed}

    def classify_intents(self, event_id: str) -> Dict[str, Any]:
        """
        Store an advisory AI intent classification for every approved participant

        Participants with too little text, an unusable model response or a
        failed write are skipped.

        Returns:
            Dict with classified, skipped and total counts
        """
        participants = self._load_participants(event_id)
        if not participants:
            return {'classified': 0, 'skipped': 0, 'total': 0}

        interactions = self.directory_service.get_interaction_texts(event_id, [p.id for p in participants])
        logger.info(f"Classifying intents for {len(participants)} participants in event {event_id}")

        classified = 0
        skipped = 0
        for participant in participants:
            try:
                classification = self.classifier.classify_participant(participant, interactions.get(participant.id))
            except ClassificationError as e:
                logger.warning(f"Skipping participant {participant.id}: {e}")
                skipped += 1
                continue

            if classification is None:
                skipped += 1
                continue

            saved = self.directory_service.update_ai_classification(participant.id, classification)
            if saved['success']:
                classified += 1
            else:
                logger.error(f"Failed to store AI classification for {participant.id}: {saved.get('error')}")
                skipped += 1

        logger.info(f"AI classification: {classified} classified, {skipped} skipped")
        return {'classified': classified, 'skipped': skipped, 'total': len(participants)}

    def get_intent_stats(self, event_id: str) -> Dict[str, int]:
        """Intent coverage: how many participants have a vector, a confident one, an AI classification"""
        rules = self._load_rules(event_id)
        participants = self._load_participants(event_id)

        with_vector = [p for p in participants if p.intent_vector]
        return {
            'total': len(participants),
            'with_vector': len(with_vector),
            'high_confidence': sum(
                1 for p in with_vector
                if (p.intent_confidence or 0) >= rules.intent_confidence_threshold
            ),
            'with_ai': sum(1 for p in participants if p.ai_intent_classification),
        }
