from campus_voice.adapters.contracts import PortalBackend
from campus_voice.core.config import Settings
from campus_voice.core.logging import get_logger

logger = get_logger(__name__)


async def build_backend(config: Settings) -> PortalBackend:
    """Build the collaborator adapters for the configured provider."""
    backend = config.BACKEND.strip().lower()

    if backend == "sql":
        # Imported lazily: creating the engine needs the database driver
        from campus_voice.adapters.sql.identity import SqlIdentityProvider
        from campus_voice.adapters.sql.storage import LocalBlobStorage
        from campus_voice.adapters.sql.store import SqlRecordStore
        from campus_voice.db.session import AsyncSessionLocal, engine

        def identity_factory() -> SqlIdentityProvider:
            return SqlIdentityProvider(AsyncSessionLocal)

        logger.info("Using sql backend")
        return PortalBackend(
            name="sql",
            store=SqlRecordStore(AsyncSessionLocal),
            storage=LocalBlobStorage(config.UPLOAD_DIR),
            identity=identity_factory(),
            identity_factory=identity_factory,
            closers=(engine.dispose,),
        )

    if backend == "supabase":
        from supabase import acreate_client

        from campus_voice.adapters.supabase.identity import SupabaseIdentityProvider
        from campus_voice.adapters.supabase.storage import SupabaseBlobStorage
        from campus_voice.adapters.supabase.store import SupabaseRecordStore

        if not (config.SUPABASE_URL and config.SUPABASE_KEY and config.SUPABASE_SERVICE_KEY):
            raise RuntimeError("SUPABASE_URL, SUPABASE_KEY and SUPABASE_SERVICE_KEY are required for the supabase backend")

        admin = await acreate_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)

        def identity_factory() -> SupabaseIdentityProvider:
            return SupabaseIdentityProvider(config.SUPABASE_URL, config.SUPABASE_KEY, admin)

        logger.info("Using supabase backend")
        return PortalBackend(
            name="supabase",
            store=SupabaseRecordStore(admin),
            storage=SupabaseBlobStorage(admin, config.SUPABASE_BUCKET),
            identity=identity_factory(),
            identity_factory=identity_factory,
        )

    raise RuntimeError(f"Unknown BACKEND: {config.BACKEND}")
