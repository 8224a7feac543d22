"""Main application entry point."""

import argparse
import logging

import uvicorn
from dotenv import load_dotenv

from src.services.config import load_config
from src.services.logging import setup_server_logging

# Load environment variables
load_dotenv()


def main():
    """Main entry point."""
    config = load_config()

    parser = argparse.ArgumentParser(description="Group Ledger API server")
    parser.add_argument("--host", default=config.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.port, help="Port to bind to")
    args = parser.parse_args()

    setup_server_logging(config)
    logger = logging.getLogger(__name__)
    logger.info("Starting Uvicorn server on %s:%d...", args.host, args.port)

    uvicorn.run(
        "src.api.app:app", host=args.host, port=args.port, log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
