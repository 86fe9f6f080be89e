"""Local entry point: `python run.py` serves the manager API with uvicorn."""

import os
import uvicorn

from ghoste_manager.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "ghoste_manager.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=not settings.is_production,
        # Each worker holds its own asyncpg pool (pool_size=5) against the Supabase pooler
        workers=int(os.environ.get("WEB_CONCURRENCY", 2)) if settings.is_production else 1,
        log_level="info",
    )
