"""
Supabase clients for the matching engine

Batch jobs (intent computation, embeddings, match generation) read every
participant of an event, so they use the service key and bypass row level
security. The anon client is for reads made on behalf of an organizer.
"""
import os
from functools import lru_cache

from supabase import create_client, Client
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

URL_VAR = "SUPABASE_URL"
KEY_VARS = {
    False: "SUPABASE_ANON_KEY",
    True: "SUPABASE_SERVICE_KEY",
}


def create_event_client(use_admin: bool = False) -> Client:
    """
    Create a new client from the environment

    Args:
        use_admin: Use the service key instead of the anon key

    Raises:
        ValueError: naming every missing variable
    """
    key_var = KEY_VARS[use_admin]
    settings = {URL_VAR: os.getenv(URL_VAR, ""), key_var: os.getenv(key_var, "")}
    missing = [name for name, value in settings.items() if not value]
    if missing:
        raise ValueError(f"Missing Supabase configuration: {', '.join(missing)}. Check your .env file.")
    return create_client(settings[URL_VAR], settings[key_var])


@lru_cache(maxsize=None)
def get_client(use_admin: bool = False) -> Client:
    """Shared client per key type, created on first use"""
    return create_event_client(use_admin)
