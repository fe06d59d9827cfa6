"""
Run the scores API locally with auto-reload.

Usage:
    python scripts/run_dev.py [--host HOST] [--port PORT] [--no-reload]

The log level comes from ``LOG_LEVEL``; a SQLite database is used
unless ``DATABASE_URL`` or the postgres settings are configured.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

load_dotenv()

import uvicorn

from app.core.config import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"{settings.PROJECT_NAME} development server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", dest="reload", action="store_false")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    print(f"{settings.PROJECT_NAME} {settings.VERSION}")
    print(f"  database: {settings.database_url.split('@')[-1]}")
    print(f"  docs:     http://{args.host}:{args.port}/docs")

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
    )
