"""
Token wallet indexes.

The wallet's guarantees lean on three indexes: one account per identity, one
intent per intent id, and the TTL index that purges expired sessions. They are
ensured at server startup and can be checked from the command line:

    python -m token_wallet.db_init            # create missing indexes
    python -m token_wallet.db_init --dry-run  # report only

An index that exists under the expected name but with different options (for
example a TTL other than expireAfterSeconds=0) is reported, never dropped.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Tuple

from pymongo.errors import OperationFailure

logger = logging.getLogger(__name__)

# (collection, keys, options); options are also what an existing index is checked against
REQUIRED_INDEXES: List[Tuple[str, List[Tuple[str, int]], Dict[str, Any]]] = [
    ("accounts", [("identity", 1)], {"name": "idx_identity_unique", "unique": True}),
    ("sessions", [("session_id", 1)], {"name": "idx_session_id_unique", "unique": True}),
    # expires_at holds the absolute expiry, so the TTL offset is zero
    ("sessions", [("expires_at", 1)], {"name": "idx_expires_at_ttl", "expireAfterSeconds": 0}),
    ("purchase_intents", [("intent_id", 1)], {"name": "idx_intent_id_unique", "unique": True}),
    ("purchase_intents", [("identity", 1), ("created_at", -1)], {"name": "idx_identity_created"}),
    ("token_ledger", [("identity", 1), ("timestamp", -1)], {"name": "idx_identity_timestamp"}),
    ("token_ledger", [("request_id", 1)], {"name": "idx_request_id"}),
]

CHECKED_OPTIONS = ("unique", "expireAfterSeconds")


def option_mismatches(existing: Dict[str, Any], keys, options: Dict[str, Any]) -> List[str]:
    """Ways an existing index differs from the required keys and options."""
    problems = []
    actual_keys = [(field, int(direction)) for field, direction in existing.get("key", [])]
    if actual_keys != list(keys):
        problems.append(f"keys={actual_keys} (want {list(keys)})")
    for option in CHECKED_OPTIONS:
        wanted = options.get(option)
        actual = existing.get(option)
        if option == "unique":
            wanted, actual = bool(wanted), bool(actual)
        if wanted != actual:
            problems.append(f"{option}={actual!r} (want {wanted!r})")
    return problems


async def ensure_index(db, collection_name: str, keys, options: Dict[str, Any], dry_run: bool = False) -> str:
    name = options["name"]
    existing = (await db[collection_name].index_information()).get(name)

    if existing is not None:
        problems = option_mismatches(existing, keys, options)
        if problems:
            logger.error(f"Index {collection_name}.{name} differs from the required definition: {problems}")
            return f"  [MISMATCH] {collection_name}.{name}: {', '.join(problems)}"
        return f"  [SKIP] {collection_name}.{name}"

    if dry_run:
        return f"  [DRY-RUN] would create {collection_name}.{name}"

    try:
        await db[collection_name].create_index(keys, **options)
    except OperationFailure as e:
        # Same keys under another name, or conflicting options
        logger.error(f"Cannot create index {collection_name}.{name}: {e}")
        return f"  [MISMATCH] {collection_name}.{name}: {e}"
    return f"  [CREATE] {collection_name}.{name}"


async def ensure_indexes(db, dry_run: bool = False) -> List[str]:
    """Create every missing wallet index and report the state of each one."""
    return [
        await ensure_index(db, collection_name, keys, options, dry_run)
        for collection_name, keys, options in REQUIRED_INDEXES
    ]


async def run(dry_run: bool = False) -> int:
    from database import close_client, get_db

    try:
        results = await ensure_indexes(get_db(), dry_run=dry_run)
    finally:
        close_client()

    for line in results:
        logger.info(line)
    return 1 if any("[MISMATCH]" in line for line in results) else 0


def main():
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="Ensure token wallet MongoDB indexes")
    parser.add_argument('--dry-run', action='store_true', help='Report without creating anything')
    args = parser.parse_args()

    logger.info(f"Database: {os.environ.get('DB_NAME')} (dry run: {args.dry_run})")
    raise SystemExit(asyncio.run(run(dry_run=args.dry_run)))


if __name__ == "__main__":
    main()
