"""
Supabase client initialization.

This module contains *only* the database connection settings and a factory for
the shared `supabase` client used by the Supabase-backed stores.

Environment variables (read from the project's .env file):
- SUPABASE_URL: Supabase project URL (required)
- SUPABASE_KEY: Supabase API key; use a server-side key on the backend (required)
- LEADS_TABLE / VENDORS_TABLE: table names (default: leads / vendors)

Nothing connects at import time; the client is created on the first
get_supabase() call, so tests and tooling can import the stores freely.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from supabase import Client, create_client

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

LEADS_TABLE: str = os.getenv("LEADS_TABLE", "leads")
VENDORS_TABLE: str = os.getenv("VENDORS_TABLE", "vendors")


def _require_env(name: str, hint: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing environment variable: {name}. {hint}")
    return value


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Return the process-wide Supabase client.

    Raises:
        RuntimeError: SUPABASE_URL or SUPABASE_KEY is not set
    """
    url = _require_env("SUPABASE_URL", "Set SUPABASE_URL to your Supabase project URL.")
    key = _require_env("SUPABASE_KEY", "Set SUPABASE_KEY to your Supabase API key.")
    return create_client(url, key)


__all__ = ["LEADS_TABLE", "VENDORS_TABLE", "get_supabase"]
