"""Root conftest — shared test configuration."""

import os

# Tests never reach a real Postgres; the app module reads settings at import
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///:memory:",
)
os.environ.setdefault("LOG_FORMAT", "text")
