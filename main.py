"""
EcoFinance Notifications - Main Entry Point

Runs the notification pipeline behind a FastAPI server:
- Rule engine evaluating budget, goal and report rules
- Notification center with quiet hours, daily caps and offline queue
- Toast delivery with deduplication and bounded concurrency
- Prometheus metrics export
"""
import logging
import os
import signal
import sys
from pathlib import Path

import uvicorn

from config import WEB_HOST, WEB_PORT
from dashboard import create_app
from ecofinance.notifications.pipeline import create_pipeline
from ecofinance.storage import JsonFileStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)

# Reduce noise from libraries
logging.getLogger('uvicorn.access').setLevel(logging.WARNING)


def build_app():
    """Create the storage, pipeline and web app"""
    data_dir = Path(os.getenv("ECOFINANCE_DATA_DIR", "data"))
    storage = JsonFileStore(data_dir / "notifications.json")
    profile_id = os.getenv("ECOFINANCE_PROFILE_ID", "default")

    pipeline = create_pipeline(storage, profile_id=profile_id)
    logger.info(f"Pipeline ready with {len(pipeline.rules)} rules, storage at {storage.path}")
    return create_app(pipeline)


def handle_sigint(sig, frame):
    """Handle Ctrl+C gracefully"""
    logger.info("Received SIGINT, shutting down...")
    sys.exit(0)


def main():
    """Main entry point"""
    signal.signal(signal.SIGINT, handle_sigint)

    app = build_app()

    logger.info("=" * 60)
    logger.info("ECOFINANCE NOTIFICATIONS STARTING")
    logger.info(f"Dashboard available at http://localhost:{WEB_PORT}")
    logger.info(f"Prometheus metrics at http://localhost:{WEB_PORT}/metrics")
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=WEB_HOST,
        port=WEB_PORT,
        log_level="warning"
    )


if __name__ == "__main__":
    main()
