"""
Tests for embedding generation
"""

import json

import pytest

from conftest import FakeEmbeddings, fake_openai
from embedding_service import EmbeddingService, participant_to_text
from errors import EmbeddingError
from models import Participant


def make_service(directory, embeddings=None):
    return EmbeddingService(client=fake_openai(embeddings=embeddings), directory_service=directory)


class TestProfileText:
    """Test profile text for embedding"""

    def test_text_includes_filled_fields(self, participant_rows):
        text = participant_to_text(Participant.from_row(participant_rows[0]))
        assert text.startswith("Name: Alice Moreau. Title: Head of Procurement")
        assert "Intent: buying" in text
        assert "Expertise: Payments, Risk" in text

    def test_empty_profile(self):
        assert participant_to_text(Participant(id='x')) == "No profile information"


class TestEmbeddingBatch:
    """Test the embeddings API wrapper"""

    def test_results_in_input_order(self, directory):
        embeddings = FakeEmbeddings(vector_for=lambda text: [float(len(text))])
        service = make_service(directory, embeddings)
        assert service.get_embeddings_batch(['a', 'bbb']) == [[1.0], [3.0]]

    def test_api_failure_raises(self, directory):
        service = make_service(directory, FakeEmbeddings(fail_texts=('boom',)))
        with pytest.raises(EmbeddingError):
            service.get_embeddings_batch(['boom'])

    def test_requires_key_or_client(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        with pytest.raises(ValueError):
            EmbeddingService()


class TestGenerateForEvent:
    """Test embedding generation for an event"""

    def test_generates_for_all_approved(self, fake_db, directory):
        service = make_service(directory)
        result = service.generate_for_event('event-1')

        assert result['generated'] == 6
        assert result['dimensions'] == 3
        assert result['skipped'] == 0
        assert result['failed'] == 0

        row = fake_db.tables['profile_embeddings'][0]
        assert len(json.loads(row['embedding'])) == 3
        assert row['model'] == 'text-embedding-3-small'
        assert row['embedding_text'].startswith('Name: ')

    def test_unchanged_profiles_skipped(self, fake_db, directory):
        service = make_service(directory)
        service.generate_for_event('event-1')

        next(r for r in fake_db.tables['participants'] if r['id'] == 'p03')['profiles']['bio'] = 'New bio'
        embeddings = FakeEmbeddings()
        rerun = make_service(directory, embeddings).generate_for_event('event-1')

        assert rerun['generated'] == 1
        assert rerun['skipped'] == 5
        assert len(embeddings.requests) == 1 and 'New bio' in embeddings.requests[0][0]

    def test_up_to_date_run_reports_stored_dimensions(self, directory):
        make_service(directory).generate_for_event('event-1')
        embeddings = FakeEmbeddings()
        rerun = make_service(directory, embeddings).generate_for_event('event-1')

        assert rerun['generated'] == 0
        assert rerun['skipped'] == 6
        assert rerun['dimensions'] == 3
        assert embeddings.requests == []

    def test_force_regenerates(self, directory):
        make_service(directory).generate_for_event('event-1')
        result = make_service(directory).generate_for_event('event-1', force=True)
        assert result['generated'] == 6
        assert result['skipped'] == 0

    def test_batches_are_bounded(self, directory):
        embeddings = FakeEmbeddings()
        make_service(directory, embeddings).generate_for_event('event-1', batch_size=4)
        assert [len(r) for r in embeddings.requests] == [4, 2]

    def test_failed_batch_retried_per_item(self, directory):
        embeddings = FakeEmbeddings(fail_batches_over=1, fail_texts=('Farah',))
        result = make_service(directory, embeddings).generate_for_event('event-1', batch_size=3)

        assert result['generated'] == 5
        assert result['failed'] == 1

    def test_store_failure_counted(self, fake_db, directory):
        fake_db.failures.add(('profile_embeddings', 'upsert'))
        result = make_service(directory).generate_for_event('event-1')
        assert result['generated'] == 0
        assert result['failed'] == 6

    def test_no_participants(self, directory):
        result = make_service(directory).generate_for_event('event-9')
        assert result['generated'] == 0
