"""
Entry point for the mediahub service.

Run this file directly to start the FastAPI server:
    python main.py

Or use uvicorn directly:
    uvicorn mediahub.main:app --reload --host 0.0.0.0 --port 8000
"""

import uvicorn

from mediahub.config import settings


def main() -> None:
    """
    Start the uvicorn server.

    Server configuration can be overridden via environment variables:
    - HOST: Server host (default: 0.0.0.0)
    - PORT: Server port (default: 8000)
    - MEDIAHUB_STORAGE_BACKEND: sqlite or memory
    - MEDIAHUB_TMDB_API_KEY: enables new-episode refresh
    """
    print("=" * 60)
    print("mediahub")
    print("=" * 60)
    print(f"Starting server on http://{settings.host}:{settings.port}")
    print(f"Storage: {settings.storage_backend} ({settings.database_path})")
    print(f"TMDB episode refresh: {'enabled' if settings.tmdb_api_key else 'disabled'}")
    print("=" * 60)

    uvicorn.run(
        "mediahub.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
