from typing import Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from ordertrack.config import settings
from ordertrack.modules.auth.storage import FileSessionStorage


class SupabaseClient:
    _client: AsyncClient = None
    _storage: FileSessionStorage = None

    @classmethod
    def get_storage(cls) -> FileSessionStorage:
        if cls._storage is None:
            cls._storage = FileSessionStorage(settings.session_file)
        return cls._storage

    @classmethod
    async def get_client(cls) -> AsyncClient:
        """Single anon-key client; the persisted session makes row-level security apply to the signed in user."""
        if cls._client is None:
            options = AsyncClientOptions(
                storage=cls.get_storage(),
                persist_session=True,
                auto_refresh_token=True,
                postgrest_client_timeout=settings.request_timeout_seconds,
                storage_client_timeout=int(settings.request_timeout_seconds),
            )
            cls._client = await acreate_client(settings.supabase_url, settings.supabase_key, options=options)
        return cls._client

    @classmethod
    def reset_client(cls, storage: Optional[FileSessionStorage] = None):
        cls._client = None
        cls._storage = storage


async def get_supabase() -> AsyncClient:
    return await SupabaseClient.get_client()
