import logging
import os
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from triply.db.session import engine

logger = logging.getLogger("wait_for_db")

timeout_s = int(os.getenv("DB_WAIT_TIMEOUT", "60"))
start = time.time()
last_err = None

logger.info("waiting for database at %s (timeout=%ss)", engine.url.render_as_string(hide_password=True), timeout_s)
while True:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("database is ready")
        break
    except OperationalError as e:
        last_err = e
        if time.time() - start > timeout_s:
            raise SystemExit(f"database not ready after {timeout_s}s: {last_err}")
        time.sleep(1)
