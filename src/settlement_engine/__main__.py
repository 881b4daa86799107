"""Entry point for running the application with uvicorn."""

import logging

import uvicorn

from settlement_engine.config import get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "settlement_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
