"""
Main entrypoint: contribution review API server and maintenance commands.

    python main.py serve              # FastAPI server on API_HOST:API_PORT
    python main.py reconcile-credits  # apply point credits left pending by failed approvals

Env: DATABASE_URL or DB_PATH, RECEIPTS_DIR, JWT_SECRET, API_HOST, API_PORT, etc.

API-only: uvicorn contribution_review.api_server.app:app --host 0.0.0.0 --port 8000
"""

import argparse
import os
import sys

# Configure structured JSON logging before other imports that may log
from contribution_review.review_logging import get_logger

logger = get_logger("main")


def serve() -> None:
    from contribution_review.config import get_settings

    import uvicorn

    settings = get_settings()
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        "contribution_review.api_server.app:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


def reconcile_credits(limit: int) -> int:
    from contribution_review.database import get_database
    from contribution_review.review import ReviewTransitionEngine

    engine = ReviewTransitionEngine(get_database())
    applied = engine.reconcile_pending_credits(limit=limit)
    logger.info("main_reconcile_done", applied=applied)
    return applied


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Contribution review service")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the API server")
    rec = sub.add_parser("reconcile-credits", help="Credit approved contributions whose credit is pending")
    rec.add_argument("--limit", type=int, default=500)
    args = parser.parse_args(argv)

    if args.command in (None, "serve"):
        serve()
    elif args.command == "reconcile-credits":
        reconcile_credits(args.limit)
    else:
        parser.print_help()
        sys.exit(2)


if __name__ == "__main__":
    main()
