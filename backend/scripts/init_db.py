import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discovery.database import Base, engine
from discovery import models  # noqa: F401  registers tables on Base.metadata


def main() -> None:
    Base.metadata.create_all(bind=engine)
    print(f"Listing tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
