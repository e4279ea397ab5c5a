"""Delete chunked-upload sessions that were never finalized."""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.deps import chunk_store
from src.config import settings
from src.uploads.chunks import purge_stale_sessions


def purge_uploads(max_age_seconds: int, dry_run: bool = False) -> None:
    store = chunk_store()
    print(f"Scanning {settings.chunk_backend.value} chunk store for sessions older than "
          f"{max_age_seconds}s...")

    if dry_run:
        sessions = store.list_sessions()
        print(f"  {len(sessions)} sessions present; dry run, nothing deleted")
        return

    purged = purge_stale_sessions(store, max_age_seconds)
    for session_id in purged:
        print(f"  purged {session_id}")
    print(f"\nDone! Purged {len(purged)} stale upload sessions.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--max-age", type=int, default=settings.upload_session_ttl_seconds)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()
    purge_uploads(args.max_age, args.dry_run)
