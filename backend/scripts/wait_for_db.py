from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discovery.database import engine


def main() -> None:
    parser = argparse.ArgumentParser(description="Block until the listing store accepts connections.")
    parser.add_argument("--attempts", type=int, default=60)
    parser.add_argument("--delay", type=float, default=2.0)
    args = parser.parse_args()

    for attempt in range(1, args.attempts + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            print("Listing store is ready.")
            return
        except OperationalError:
            print(f"Waiting for listing store ({attempt}/{args.attempts})...")
            time.sleep(args.delay)

    raise SystemExit("Listing store did not become ready in time.")


if __name__ == "__main__":
    main()
