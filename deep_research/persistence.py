"""Optional Supabase mirror for finished research results.

Enabled only when SUPABASE_URL and SUPABASE_KEY are set. The local
history file stays the source of truth; mirror failures are logged and
never fail a run.
"""

import logging
import os
import time
from typing import Optional

from supabase import Client, create_client

from .models import ResearchResult

logger = logging.getLogger(__name__)

RESULTS_TABLE = "deep_research_results"


def _client() -> Optional[Client]:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_KEY")
    if not url or not key:
        return None
    return create_client(url, key)


def persist_result(result: ResearchResult, client: Optional[Client] = None) -> bool:
    """Upsert *result* keyed by its id. Returns True when a row was written."""
    try:
        client = client or _client()
        if not client:
            return False
        client.table(RESULTS_TABLE).upsert({
            "id": result.id,
            "title": result.title,
            "query": result.query,
            "result": result.to_json_dict(),
            "updated_at": int(time.time()),
        }, on_conflict="id").execute()
    except Exception as exc:
        logger.warning("Could not mirror result %s to Supabase: %s", result.id, exc)
        return False
    return True
