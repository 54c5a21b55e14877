#!/usr/bin/env python3
"""
Wait for the database, create tables, seed, then uvicorn.
"""
import os
import sys

from triply.core.logging import configure_logging

configure_logging()

# 1) Wait for DB
import wait_for_db  # noqa: F401,E402

# 2) Create tables (no migration tooling)
from triply.db.session import create_all  # noqa: E402
create_all()

# 3) Seed demo routes and schedules
from triply.seed import run as run_seed  # noqa: E402
run_seed()

# 4) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "triply.main:app", "--host", "0.0.0.0", "--port", os.getenv("PORT", "8000")],
)
