"""Check the configured database connection and schema."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load .env file
from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text

from app.core.config import settings
from app.db.session import build_engine

EXPECTED_TABLES = ("samples", "score_records")

print("=" * 60)
print("Testing database connection")
print("=" * 60)
print(f"Database URL: {settings.database_url.split('@')[-1]}")  # Hide password
print()

try:
    engine = build_engine(settings.database_url, echo=False)

    with Session(engine) as session:
        session.exec(text("SELECT 1")).first()
        print("✓ Connection successful!")

    existing = set(inspect(engine).get_table_names())
    for table in EXPECTED_TABLES:
        mark = "✓" if table in existing else "✗"
        print(f"{mark} table {table}")

    if not all(t in existing for t in EXPECTED_TABLES):
        print()
        print("Run: python scripts/init_db.py  (or alembic upgrade head)")
        sys.exit(1)

except SQLAlchemyError as e:
    print(f"✗ Connection failed: {e}")
    sys.exit(1)
