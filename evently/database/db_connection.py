"""
Supabase connection helper.
Provides get_db() for use by services.
"""

import os
import logging

from dotenv import load_dotenv
from supabase import create_client, Client
from supabase.client import ClientOptions

# Load .env variables from the project root
load_dotenv()


def get_db() -> Client:
    """
    Returns a new Supabase client for a single request.

    Every request gets its own client so that the auth session restored into
    it (and the row-level security that depends on it) never leaks between
    callers. Token auto-refresh and session persistence are disabled: the
    gateway owns the session cookie.

    Usage:
        store = AccountStore(get_db())

    Returns:
        supabase.Client: A client bound to SUPABASE_URL / SUPABASE_ANON_KEY.

    Raises:
        RuntimeError: If the connection settings are missing.
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_ANON_KEY")
    if not url:
        raise RuntimeError("SUPABASE_URL is not set. Please set the environment variable.")
    if not key:
        raise RuntimeError("SUPABASE_ANON_KEY is not set. Please set the environment variable.")

    try:
        return create_client(
            url,
            key,
            options=ClientOptions(auto_refresh_token=False, persist_session=False),
        )
    except Exception as e:
        logging.error(f"[Store] Error creating Supabase client: {e}")
        # Re-raise so the caller knows the client could not be built
        raise
