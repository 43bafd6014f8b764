"""
Supabase client for the service.

All sync work runs with the service role key: organization access has already
been checked by the caller (HTTP dependency or scheduled task).
"""

import os
from functools import lru_cache

from dotenv import find_dotenv, load_dotenv
from supabase import Client, create_client

_ = load_dotenv(find_dotenv())


@lru_cache(maxsize=1)
def get_service_client() -> Client:
    """
    Get the Service Role client (bypasses RLS).

    Cached so API workers and Celery workers each hold one instance per process.
    """
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_ROLE_KEY"]
    return create_client(url, key)
