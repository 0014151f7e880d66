#!/usr/bin/env python
"""Start the FastAPI application with proper port configuration."""
import os
import uvicorn

if __name__ == "__main__":
    # Get port from environment, default to 8000
    port = int(os.environ.get("PORT", 8000))
    # Each worker process runs its own registry and listener
    workers = int(os.environ.get("WEB_CONCURRENCY", 1))

    print(f"Starting application on port {port} with {workers} worker(s)")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level="info",
    )
