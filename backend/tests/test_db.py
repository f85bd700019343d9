import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from taqqafi.db import DEFAULT_DATABASE_URL, normalize_database_url


def test_postgres_urls_use_psycopg_driver():
    assert normalize_database_url("postgres://u:p@db:5432/x") == "postgresql+psycopg://u:p@db:5432/x"
    assert normalize_database_url("postgresql://u:p@db/x") == "postgresql+psycopg://u:p@db/x"
    assert normalize_database_url("postgresql+psycopg://u@db/x") == "postgresql+psycopg://u@db/x"


def test_other_urls_pass_through():
    assert normalize_database_url("sqlite:///./local.sqlite3") == "sqlite:///./local.sqlite3"
    assert normalize_database_url("  ") == DEFAULT_DATABASE_URL
