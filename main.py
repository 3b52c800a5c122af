"""
Run the Contract Intelligence API with uvicorn.

    python main.py

The PORT environment variable (set by most hosting platforms) takes
precedence over the configured port.
"""

import os

import uvicorn

from app.core.config import settings


def run() -> None:
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=int(os.getenv("PORT", settings.PORT)),
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )


if __name__ == "__main__":
    run()
