"""Run the inventory API with uvicorn.

    python main.py --port 8080
"""
import argparse

import uvicorn

from inventory.config import settings
from inventory.logging_config import setup_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"Run {settings.app_name}")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", default=settings.debug, help="Reload on code changes")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    setup_logging()

    db_target = settings.db.url.split("@")[-1]
    print(f"{settings.app_name} v{settings.version} ({settings.environment.value})")
    print(f"Database: {db_target}")
    print(f"Storage: {settings.supabase.url or 'not configured'}")
    print(f"Feed credentials: {'set' if settings.feed.user and settings.feed.password else 'missing'}")
    print("-" * 50)

    uvicorn.run(
        "inventory.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=["inventory"] if args.reload else None,
        log_config=None,
    )
