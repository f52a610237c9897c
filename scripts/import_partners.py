"""
Partner import from the legacy spreadsheet CSV export.

Upload keys are taken from the CSV as-is; partners already use them.

Usage:
    python scripts/import_partners.py /path/to/partners.csv
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.database import AsyncSessionLocal, engine, Base
import backend.models  # noqa: F401
from backend.services.partner_import import import_partners, read_csv


async def run_import(csv_path: Path) -> int:
    print(f"Reading CSV from: {csv_path}")
    rows = read_csv(csv_path.read_text(encoding="utf-8-sig"))
    print(f"Found {len(rows)} rows in CSV\n")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        stats = await import_partners(session, rows)

    await engine.dispose()
    print()
    print(stats.summary())
    return 0


def main(argv) -> int:
    if len(argv) < 2:
        print("Usage: python scripts/import_partners.py <path-to-csv>")
        return 1

    csv_path = Path(argv[1])
    if not csv_path.is_file():
        print(f"File not found: {csv_path}")
        return 1

    return asyncio.run(run_import(csv_path))


if __name__ == "__main__":
    sys.exit(main(sys.argv))
