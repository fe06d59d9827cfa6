"""
Database initialization script.

Run this script to create the samples and score_records tables.
Deployments should prefer ``alembic upgrade head``.

Usage:
    python scripts/init_db.py
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy.exc import SQLAlchemyError

from app.core.logging import configure_logging, get_logger
from app.db.init_db import init_db

if __name__ == "__main__":
    configure_logging()
    logger = get_logger("scripts.init_db")

    try:
        init_db()
    except SQLAlchemyError:
        logger.error("database_initialization_failed", exc_info=True)
        sys.exit(1)

    logger.info("database_initialized")
    sys.exit(0)
