"""Block container start-up until the storefront database accepts connections."""
import os
import sys
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from storefront.config import Config
from storefront.database import build_engine

MAX_ATTEMPTS = int(os.environ.get("DB_WAIT_ATTEMPTS", "30"))
SLEEP_SECONDS = float(os.environ.get("DB_WAIT_INTERVAL", "2"))


def wait_for_database(config=Config, attempts: int = MAX_ATTEMPTS, interval: float = SLEEP_SECONDS) -> bool:
    engine = build_engine(config)
    try:
        for attempt in range(1, attempts + 1):
            try:
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
                print("[wait_for_db] Database connection established.")
                return True
            except OperationalError as exc:
                print(f"[wait_for_db] Attempt {attempt}/{attempts} failed: {exc}")
                time.sleep(interval)
    finally:
        engine.dispose()
    return False


def main() -> None:
    if not wait_for_database():
        sys.exit("[wait_for_db] Database not reachable after waiting.")


if __name__ == "__main__":
    main()
