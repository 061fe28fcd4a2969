from supabase import create_client
from core.config import settings, logger
from typing import Dict, Any
import asyncio
from functools import partial

# Cache clients per project URL
_supabase_clients: Dict[str, Any] = {}
_init_lock = asyncio.Lock()

async def get_supabase_client():
    """
    Initializes and returns the Supabase client used for storage (thread-safe).
    Always uses the service role key, since creating public buckets bypasses RLS.
    """
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_KEY
    if not url or not key:
        logger.error("Supabase URL or Service Role Key not configured. Cannot create client.")
        raise ValueError("Supabase URL or Service Role Key not configured")

    if url not in _supabase_clients:
        async with _init_lock:
            # Double check after acquiring lock
            if url not in _supabase_clients:
                logger.info("Initializing Supabase storage client with service role key...")
                try:
                    # Run create_client in a thread pool since it's synchronous
                    loop = asyncio.get_running_loop()
                    client_instance = await loop.run_in_executor(None, partial(create_client, url, key))
                    _supabase_clients[url] = client_instance
                    logger.info("Supabase storage client initialized successfully.")
                except Exception as e:
                    logger.error(f"Failed to initialize Supabase client: {e}", exc_info=True)
                    raise RuntimeError(f"Failed to initialize Supabase client: {e}")

    return _supabase_clients[url]
