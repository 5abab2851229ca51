"""
Tests for Supabase client creation
"""

import pytest

import supabase_client
from directory_service import DirectoryService


@pytest.fixture
def created(monkeypatch):
    """Record create_client calls instead of connecting"""
    calls = []

    def fake_create_client(url, key):
        calls.append((url, key))
        return object()

    monkeypatch.setattr(supabase_client, 'create_client', fake_create_client)
    monkeypatch.setenv('SUPABASE_URL', 'https://example.supabase.co')
    monkeypatch.setenv('SUPABASE_ANON_KEY', 'anon-key')
    monkeypatch.setenv('SUPABASE_SERVICE_KEY', 'service-key')
    supabase_client.get_client.cache_clear()
    yield calls
    supabase_client.get_client.cache_clear()


class TestClients:
    """Test key selection and sharing"""

    def test_anon_and_service_keys(self, created):
        supabase_client.create_event_client()
        supabase_client.create_event_client(use_admin=True)
        assert created == [
            ('https://example.supabase.co', 'anon-key'),
            ('https://example.supabase.co', 'service-key'),
        ]

    def test_client_shared_per_key_type(self, created):
        admin = supabase_client.get_client(use_admin=True)
        assert supabase_client.get_client(use_admin=True) is admin
        assert supabase_client.get_client() is not admin
        assert len(created) == 2

    def test_missing_settings_named(self, created, monkeypatch):
        monkeypatch.delenv('SUPABASE_URL')
        monkeypatch.delenv('SUPABASE_SERVICE_KEY')
        with pytest.raises(ValueError, match="SUPABASE_URL, SUPABASE_SERVICE_KEY"):
            supabase_client.create_event_client(use_admin=True)
        assert created == []

    def test_directory_uses_admin_client(self, created):
        service = DirectoryService(use_admin=True)
        assert service.client is supabase_client.get_client(use_admin=True)
        assert created == [('https://example.supabase.co', 'service-key')]
