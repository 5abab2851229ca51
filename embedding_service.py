"""
Embedding Service - Semantic matching using OpenAI embeddings
Converts participant profile text to vectors and keeps the per-event cache fresh
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openai import OpenAI

from config import get_embedding_settings
from directory_service import DirectoryService
from errors import EmbeddingError
from models import Participant
from utils.helpers import chunked, embedding_to_json

logger = logging.getLogger(__name__)


def participant_to_text(participant: Participant) -> str:
    """Build the text that represents a participant for embedding"""
    parts = []

    if participant.full_name:
        parts.append(f"Name: {participant.full_name}")
    if participant.title:
        parts.append(f"Title: {participant.title}")
    if participant.company_name:
        parts.append(f"Company: {participant.company_name}")
    if participant.industry:
        parts.append(f"Industry: {participant.industry}")
    if participant.bio:
        parts.append(f"Bio: {participant.bio}")
    if participant.intents:
        parts.append(f"Intent: {', '.join(participant.intents)}")
    if participant.role:
        parts.append(f"Role: {participant.role}")
    if participant.looking_for:
        parts.append(f"Looking for: {participant.looking_for}")
    if participant.offering:
        parts.append(f"Offering: {participant.offering}")
    if participant.expertise_areas:
        parts.append(f"Expertise: {', '.join(participant.expertise_areas)}")
    if participant.interests:
        parts.append(f"Interests: {', '.join(participant.interests)}")
    if participant.tags:
        parts.append(f"Tags: {', '.join(participant.tags)}")

    return ". ".join(parts) if parts else "No profile information"


class EmbeddingService:
    """
    Generate embeddings using OpenAI's text-embedding-3-small model
    and cache them per participant in `profile_embeddings`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
        directory_service: Optional[DirectoryService] = None
    ):
        """Initialize with OpenAI API key (or a ready client)"""
        settings = get_embedding_settings()
        self.model = settings['model']
        self.batch_size = settings['batch_size']

        if client is None:
            self.api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not self.api_key:
                raise ValueError("OPENAI_API_KEY not set")
            client = OpenAI(api_key=self.api_key)

        self.client = client
        self._directory_service = directory_service

    @property
    def directory_service(self) -> DirectoryService:
        if self._directory_service is None:
            self._directory_service = DirectoryService(use_admin=True)
        return self._directory_service

    def get_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Get embeddings for one batch of texts, in input order.

        Raises:
            EmbeddingError: if the API call fails or returns the wrong number of vectors
        """
        if not texts:
            return []

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=[t.strip() or "No profile information" for t in texts]
            )
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        items = sorted(response.data, key=lambda item: getattr(item, 'index', 0))
        embeddings = [list(item.embedding) for item in items]
        if len(embeddings) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(embeddings)}")
        return embeddings

    def _embed_with_fallback(self, texts: List[str]) -> List[Optional[List[float]]]:
        """Embed a batch; if the batch call fails, retry each text on its own"""
        try:
            return self.get_embeddings_batch(texts)
        except EmbeddingError as e:
            logger.warning(f"Batch embedding failed ({e}); retrying {len(texts)} texts individually")

        results: List[Optional[List[float]]] = []
        for text in texts:
            try:
                results.append(self.get_embeddings_batch([text])[0])
            except EmbeddingError as e:
                logger.error(f"Embedding failed for one participant: {e}")
                results.append(None)
        return results

    def generate_for_event(
        self,
        event_id: str,
        force: bool = False,
        batch_size: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Generate and store embeddings for approved participants of an event.

        Only participants with no embedding, or whose profile text changed since
        their embedding was made, are sent to the API (all of them with force=True).

        Returns:
            Dict with generated count, vector dimensions, skipped (up to date) and failed counts
        """
        batch_size = batch_size or self.batch_size
        rows = self.directory_service.get_approved_participants(event_id)
        participants = [Participant.from_row(r) for r in rows]
        if not participants:
            return {'success': True, 'generated': 0, 'dimensions': 0, 'skipped': 0, 'failed': 0, 'model': self.model}

        existing = self.directory_service.get_embedding_records([p.id for p in participants])

        to_embed = []
        skipped = 0
        # up-to-date vectors still report their size when nothing new is generated
        dimensions = 0
        for participant in participants:
            text = participant_to_text(participant)
            stored = existing.get(participant.id)
            if not force and stored and stored['embedding_text'] == text:
                skipped += 1
                dimensions = dimensions or stored['dimensions']
                continue
            to_embed.append((participant.id, text))

        logger.info(f"Embedding {len(to_embed)} participants for event {event_id} ({skipped} up to date)")

        generated = 0
        failed = 0

        for batch in chunked(to_embed, batch_size):
            embeddings = self._embed_with_fallback([text for _, text in batch])
            generated_at = datetime.now(timezone.utc).isoformat()

            rows_to_save = []
            for (participant_id, text), embedding in zip(batch, embeddings):
                if not embedding:
                    failed += 1
                    continue
                dimensions = len(embedding)
                rows_to_save.append({
                    'participant_id': participant_id,
                    'embedding': embedding_to_json(embedding),
                    'dimensions': len(embedding),
                    'embedding_text': text,
                    'model': self.model,
                    'generated_at': generated_at,
                })

            if rows_to_save:
                result = self.directory_service.save_profile_embeddings(rows_to_save)
                if result['success']:
                    generated += len(rows_to_save)
                else:
                    logger.error(f"Failed to store embeddings: {result.get('error')}")
                    failed += len(rows_to_save)

            logger.info(f"Progress: {generated + failed}/{len(to_embed)} participants processed")

        return {
            'success': True,
            'generated': generated,
            'dimensions': dimensions,
            'skipped': skipped,
            'failed': failed,
            'model': self.model
        }
