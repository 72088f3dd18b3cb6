#!/usr/bin/env python3
"""Re-sanitize the stored emails of all published posts.

Run after changing the sanitizer so existing posts get the new output.

Usage:
    python scripts/reprocess_emails.py [--dry-run]

Options:
    --dry-run    Report what would change without saving
"""

import argparse
import sys

from groupmail.database import SessionLocal
from groupmail.errors import PersistenceError
from groupmail.services.reprocess import reprocess_posts


def main():
    parser = argparse.ArgumentParser(description="Re-sanitize stored post emails")
    parser.add_argument("--dry-run", action="store_true", help="Do not save changes")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        changed = reprocess_posts(db, dry_run=args.dry_run)
    except PersistenceError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        db.close()

    for entry in changed:
        print(
            f">>> post {entry.post_id}: old length {entry.old_length}, "
            f"new length {entry.new_length}, saving {entry.saving_percent}%"
        )
    verb = "would update" if args.dry_run else "updated"
    print(f"> reprocessing done, {verb} {len(changed)} posts")


if __name__ == "__main__":
    main()
