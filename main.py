"""
Deckflow API server. Run with: python main.py
"""

import uvicorn

from deckflow.core.config import get_settings
from deckflow.factory import create_app

app = create_app()


def run() -> None:
    settings = get_settings()
    dev = settings.env == "development"
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=dev,
        log_level=settings.log_level.lower(),
        access_log=dev,
    )


if __name__ == "__main__":
    run()
