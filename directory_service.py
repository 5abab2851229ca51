"""
Directory service for the matching engine
Handles all participant, rules, embedding and match database operations

Reads raise on failure (a generation run cannot proceed on partial data);
per-row writes return {"success": ..., "error": ...} result dicts.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from config import get_default_rules, get_interaction_settings, get_match_batch_size
from models import STATUS_PENDING, validate_status_transition
from supabase_client import get_client
from utils.helpers import chunked, json_to_embedding

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
IN_FILTER_CHUNK = 200
MATCH_CONFLICT_KEY = "event_id,participant_a_id,participant_b_id"

PARTICIPANT_FIELDS = (
    "id, event_id, user_id, role, status, intent, intents, looking_for, offering, tags, "
    "is_sponsor, is_vip, intent_vector, intent_confidence, ai_intent_classification, "
    "profiles!inner(full_name, title, company_name, company_size, company_website, "
    "industry, expertise_areas, interests, bio)"
)

MATCH_EXPORT_COLUMNS = [
    'participant_a_id', 'participant_a_name', 'participant_b_id', 'participant_b_name',
    'score', 'intent_score', 'industry_score', 'interest_score',
    'complementarity_score', 'embedding_score', 'match_reasons', 'status'
]


class DirectoryService:
    def __init__(self, use_admin: bool = False, client=None):
        self.client = client or get_client(use_admin)

    def _fetch_paginated(self, build_query: Callable[[], Any]) -> List[Dict[str, Any]]:
        """Run a query page by page (PostgREST caps a response at 1000 rows)"""
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            response = build_query().range(start, start + PAGE_SIZE - 1).execute()
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    def _fetch_in(self, table: str, columns: str, field: str, values: Iterable[str]) -> List[Dict[str, Any]]:
        """Select rows whose `field` is in `values`, chunking the filter list"""
        rows: List[Dict[str, Any]] = []
        for batch in chunked(sorted(set(values)), IN_FILTER_CHUNK):
            response = self.client.table(table).select(columns).in_(field, batch).execute()
            rows.extend(response.data or [])
        return rows

    # ==========================================
    # PARTICIPANTS
    # ==========================================

    def get_approved_participants(self, event_id: str) -> List[Dict[str, Any]]:
        """Get approved participants of an event joined with their profiles, ordered by id"""
        return self._fetch_paginated(
            lambda: self.client.table("participants")
            .select(PARTICIPANT_FIELDS)
            .eq("event_id", event_id)
            .eq("status", "approved")
            .order("id")
        )

    def update_participant_intent(
        self,
        participant_id: str,
        intent_vector: Dict[str, float],
        intent_confidence: int
    ) -> Dict[str, Any]:
        """Store a computed intent vector and confidence"""
        try:
            self.client.table("participants").update({
                "intent_vector": intent_vector,
                "intent_confidence": intent_confidence
            }).eq("id", participant_id).execute()
            return {"success": True}
        except Exception as e:
            return {"success": False, "error": str(e)}

    def update_ai_classification(self, participant_id: str, classification: Dict[str, float]) -> Dict[str, Any]:
        """Store the advisory AI intent classification (kept apart from intent_vector)"""
        try:
            self.client.table("participants").update({
                "ai_intent_classification": classification
            }).eq("id", participant_id).execute()
            return {"success": True}
        except Exception as e:
            return {"success": False, "error": str(e)}

    def get_interaction_texts(
        self,
        event_id: str,
        participant_ids: Iterable[str]
    ) -> Dict[str, Dict[str, List[str]]]:
        """
        Collect what each participant wrote in the event

        Messages come from the event's conversations (newest first, within the
        lookback window); meeting notes are agenda notes on meetings they requested.

        Returns:
            participant_id -> {'messages': [...], 'meeting_notes': [...]}
            (only participants with at least one text are present)
        """
        settings = get_interaction_settings()
        wanted = set(participant_ids)
        since = (datetime.now(timezone.utc) - timedelta(days=settings['lookback_days'])).isoformat()
        texts: Dict[str, Dict[str, List[str]]] = {}

        def bucket(participant_id: str) -> Dict[str, List[str]]:
            return texts.setdefault(participant_id, {'messages': [], 'meeting_notes': []})

        conversations = self._fetch_paginated(
            lambda: self.client.table("conversations")
            .select("id, participant_a_id, participant_b_id")
            .eq("event_id", event_id)
            .order("id")
        )
        conversation_ids = [
            c['id'] for c in conversations
            if c.get('participant_a_id') in wanted or c.get('participant_b_id') in wanted
        ]

        for batch in chunked(conversation_ids, IN_FILTER_CHUNK):
            messages = self._fetch_paginated(
                lambda: self.client.table("messages")
                .select("sender_id, content, created_at")
                .in_("conversation_id", batch)
                .gte("created_at", since)
                .order("created_at", desc=True)
            )
            for message in messages:
                sender = message.get('sender_id')
                content = (message.get('content') or '').strip()
                if sender not in wanted or not content:
                    continue
                sent = bucket(sender)['messages']
                if len(sent) < settings['max_messages']:
                    sent.append(content)

        meetings = self._fetch_paginated(
            lambda: self.client.table("meetings")
            .select("id, requester_id, agenda_note")
            .eq("event_id", event_id)
            .order("id")
        )
        for meeting in meetings:
            requester = meeting.get('requester_id')
            note = (meeting.get('agenda_note') or '').strip()
            if requester not in wanted or not note:
                continue
            notes = bucket(requester)['meeting_notes']
            if len(notes) < settings['max_meeting_notes']:
                notes.append(note)

        return texts

    # ==========================================
    # MATCHING RULES
    # ==========================================

    def get_matching_rules(self, event_id: str) -> Optional[Dict[str, Any]]:
        """Get the event's matching_rules row, or None if the organizer never saved one"""
        response = self.client.table("matching_rules").select("*").eq("event_id", event_id).limit(1).execute()
        return response.data[0] if response.data else None

    def create_default_rules(self, event_id: str) -> Dict[str, Any]:
        """Insert a matching_rules row with the configured defaults unless one exists"""
        try:
            existing = self.get_matching_rules(event_id)
            if existing:
                return {"success": True, "created": False, "data": existing}

            data = {"event_id": event_id, **get_default_rules()}
            response = self.client.table("matching_rules").insert(data).execute()
            return {"success": True, "created": True, "data": response.data[0] if response.data else data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ==========================================
    # EMBEDDINGS
    # ==========================================

    def get_embedding_records(self, participant_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """participant_id -> {embedding_text, dimensions} of the stored embedding"""
        rows = self._fetch_in(
            "profile_embeddings", "participant_id, embedding_text, dimensions", "participant_id", participant_ids
        )
        return {
            r['participant_id']: {'embedding_text': r.get('embedding_text') or '', 'dimensions': r.get('dimensions') or 0}
            for r in rows
        }

    def get_profile_embeddings(self, participant_ids: Iterable[str]) -> Dict[str, List[float]]:
        """participant_id -> embedding vector; unreadable vectors are left out"""
        rows = self._fetch_in("profile_embeddings", "participant_id, embedding", "participant_id", participant_ids)
        embeddings = {}
        for row in rows:
            vector = json_to_embedding(row.get('embedding'))
            if vector:
                embeddings[row['participant_id']] = vector
            else:
                logger.warning(f"Ignoring unreadable embedding for participant {row['participant_id']}")
        return embeddings

    def save_profile_embeddings(self, rows: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Upsert embedding rows (one per participant)"""
        try:
            self.client.table("profile_embeddings").upsert(rows, on_conflict="participant_id").execute()
            return {"success": True, "saved": len(rows)}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ==========================================
    # MATCHES
    # ==========================================

    def get_match_keys(self, event_id: str) -> Set[Tuple[str, str]]:
        """(participant_a_id, participant_b_id) of every match row stored for the event"""
        rows = self._fetch_paginated(
            lambda: self.client.table("matches")
            .select("id, participant_a_id, participant_b_id")
            .eq("event_id", event_id)
            .order("id")
        )
        return {(r['participant_a_id'], r['participant_b_id']) for r in rows}

    def get_matches(self, event_id: str) -> List[Dict[str, Any]]:
        """All match rows of an event, best first"""
        rows = self._fetch_paginated(
            lambda: self.client.table("matches")
            .select("*")
            .eq("event_id", event_id)
            .order("id")
        )
        return sorted(rows, key=lambda r: (-(r.get('score') or 0), r['participant_a_id'], r['participant_b_id']))

    def _upsert_matches(self, rows: List[Dict[str, Any]], ignore_duplicates: bool) -> Tuple[int, int]:
        """
        Upsert one batch; on failure retry row by row

        With ignore_duplicates only rows the store actually inserted come back,
        so pairs created meanwhile by another run are not counted as written.

        Returns:
            (rows written, rows failed)
        """
        def written_by(response, sent: int) -> int:
            return len(response.data or []) if ignore_duplicates else sent

        try:
            response = self.client.table("matches").upsert(
                rows,
                on_conflict=MATCH_CONFLICT_KEY,
                ignore_duplicates=ignore_duplicates
            ).execute()
            return written_by(response, len(rows)), 0
        except Exception as e:
            logger.warning(f"Match batch upsert failed ({e}); retrying {len(rows)} rows individually")

        written = 0
        failed = 0
        for row in rows:
            try:
                response = self.client.table("matches").upsert(
                    row,
                    on_conflict=MATCH_CONFLICT_KEY,
                    ignore_duplicates=ignore_duplicates
                ).execute()
                written += written_by(response, 1)
            except Exception as e:
                logger.error(f"Failed to save match {row['participant_a_id']}/{row['participant_b_id']}: {e}")
                failed += 1
        return written, failed

    def save_matches(
        self,
        rows: List[Dict[str, Any]],
        existing_keys: Set[Tuple[str, str]],
        batch_size: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Write match rows without ever touching the status of an existing match

        Rows whose pair is already stored are upserted without a `status`
        column, so only scores and reasons change. New pairs are written as
        'pending' with ignore-duplicates, so a row created meanwhile by a
        concurrent run keeps its state.

        Returns:
            Dict with created, updated, existing and failed counts
        """
        batch_size = batch_size or get_match_batch_size()
        updates = [r for r in rows if (r['participant_a_id'], r['participant_b_id']) in existing_keys]
        inserts = [
            {**r, 'status': STATUS_PENDING}
            for r in rows if (r['participant_a_id'], r['participant_b_id']) not in existing_keys
        ]

        updated = 0
        failed = 0
        for batch in chunked(updates, batch_size):
            written, errors = self._upsert_matches(batch, ignore_duplicates=False)
            updated += written
            failed += errors

        created = 0
        insert_failed = 0
        for batch in chunked(inserts, batch_size):
            written, errors = self._upsert_matches(batch, ignore_duplicates=True)
            created += written
            insert_failed += errors
        failed += insert_failed

        # new pairs another run inserted first; left as they are
        existing = len(inserts) - created - insert_failed
        return {
            "success": failed == 0, "created": created, "updated": updated,
            "existing": existing, "failed": failed
        }

    def set_match_status(self, match_id: str, status: str) -> Dict[str, Any]:
        """
        Move a match to a new status

        Raises:
            InvalidStatusTransition: if the state machine does not allow the change
        """
        response = self.client.table("matches").select("id, status").eq("id", match_id).limit(1).execute()
        if not response.data:
            return {"success": False, "error": f"Match {match_id} not found"}

        validate_status_transition(response.data[0].get('status') or STATUS_PENDING, status)

        try:
            self.client.table("matches").update({"status": status}).eq("id", match_id).execute()
            return {"success": True, "status": status}
        except Exception as e:
            return {"success": False, "error": str(e)}

    def export_matches_dataframe(self, event_id: str) -> pd.DataFrame:
        """Export an event's matches, with participant names, to a pandas DataFrame"""
        matches = self.get_matches(event_id)
        if not matches:
            return pd.DataFrame(columns=MATCH_EXPORT_COLUMNS)

        names = {}
        for row in self.get_approved_participants(event_id):
            profile = row.get('profiles') or {}
            if isinstance(profile, list):
                profile = profile[0] if profile else {}
            names[row['id']] = profile.get('full_name') or ''

        df = pd.DataFrame(matches)
        df['participant_a_name'] = df['participant_a_id'].map(names).fillna('')
        df['participant_b_name'] = df['participant_b_id'].map(names).fillna('')
        df['match_reasons'] = df['match_reasons'].apply(
            lambda reasons: '; '.join(reasons) if isinstance(reasons, list) else (reasons or '')
        )
        for column in MATCH_EXPORT_COLUMNS:
            if column not in df.columns:
                df[column] = None
        return df[MATCH_EXPORT_COLUMNS]
