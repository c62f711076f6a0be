"""
Billing maintenance tasks.

Run:
    python -m scripts.billing_maintenance cleanup-expired
    python -m scripts.billing_maintenance stats
"""
import argparse
import json
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from voiceflow.core import config
from voiceflow.db.session import build_engine, build_session_factory
from voiceflow.services.subscription_store import cleanup_expired_subscriptions, get_subscription_stats

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def cleanup_expired(db) -> int:
    count = cleanup_expired_subscriptions(db)
    logger.info(f"Cleanup complete: {count} subscription(s) expired")
    return count


def print_stats(db) -> dict:
    stats = get_subscription_stats(db)
    print(json.dumps(stats, indent=2))
    return stats


COMMANDS = {
    "cleanup-expired": cleanup_expired,
    "stats": print_stats,
}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Voiceflow billing maintenance")
    parser.add_argument("command", choices=sorted(COMMANDS))
    parser.add_argument("--database-url", default=config.DATABASE_URL)
    args = parser.parse_args(argv)

    engine = build_engine(args.database_url)
    db = build_session_factory(engine)()
    try:
        COMMANDS[args.command](db)
    except Exception:
        logger.exception(f"Maintenance command failed: {args.command}")
        return 1
    finally:
        db.close()
        engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main())
