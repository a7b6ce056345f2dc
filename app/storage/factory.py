"""Repository factory — backend selection and initialization.

Backend selection:
  1. If SUPABASE_URL and SUPABASE_KEY are both set: use SupabaseRepository.
     SUPABASE_ANON_KEY enables per-request repositories bound to the
     caller's token (RLS); without it every query uses the service role.
  2. Otherwise: use LocalSQLiteRepository (default)

LocalSQLiteRepository path:
  Default:  storage.path from config (~/.folio/folio.db)
  Override: FOLIO_DB_PATH environment variable

LocalSQLiteRepository.initialize() raises RuntimeError on an incompatible
PRAGMA user_version; the FastAPI lifespan lets it propagate and startup is
refused.
"""

from __future__ import annotations

import os
from typing import Optional

from app.config import Config
from app.storage.protocol import Repository
from app.utils.logger import get_logger

logger = get_logger(__name__)

_ENV_SUPABASE_URL = "SUPABASE_URL"
_ENV_SUPABASE_KEY = "SUPABASE_KEY"
_ENV_SUPABASE_ANON_KEY = "SUPABASE_ANON_KEY"
_ENV_DB_PATH = "FOLIO_DB_PATH"


async def create_repository(config: Config) -> Repository:
    """Create and initialize the repository for this process."""
    supabase_url = os.getenv(_ENV_SUPABASE_URL)
    supabase_key = os.getenv(_ENV_SUPABASE_KEY)

    if supabase_url and supabase_key:
        return await _create_supabase_repository(
            supabase_url, supabase_key, os.getenv(_ENV_SUPABASE_ANON_KEY) or None
        )
    return await _create_local_sqlite_repository(os.getenv(_ENV_DB_PATH, config.storage.path))


async def _create_supabase_repository(url: str, key: str, anon_key: Optional[str]) -> Repository:
    from app.storage.supabase_backend import SupabaseRepository

    repository = SupabaseRepository(url=url, key=key, anon_key=anon_key)
    await repository.initialize()
    if anon_key is None:
        logger.warning(
            "supabase_rls_not_enforced",
            message="SUPABASE_ANON_KEY is not set; user requests run with the service role key.",
        )
    logger.info(
        "repository_selected",
        backend="SupabaseRepository",
        caller_scoped=anon_key is not None,
        # Never log the key, only the project ref
        supabase_host=url.split("//")[-1].split(".")[0] if "//" in url else "unknown",
    )
    return repository


async def _create_local_sqlite_repository(db_path: str) -> Repository:
    from app.storage.sqlite_backend import LocalSQLiteRepository

    repository = LocalSQLiteRepository(db_path=db_path)
    await repository.initialize()
    logger.info("repository_selected", backend="LocalSQLiteRepository", db_path=db_path)
    return repository
