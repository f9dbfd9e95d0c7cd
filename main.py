"""Main entry point for the roguelike chess server."""

import argparse
import logging
import os
import uvicorn

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Roguelike Chess Server")
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--mode",
        choices=["reset_and_reinforce", "persistent_armies"],
        default=None,
        help="Progression mode for new games (default: reset_and_reinforce)",
    )
    parser.add_argument(
        "--armies",
        "-a",
        type=int,
        default=None,
        help="Number of stacked Black armies in persistent mode (default: 3)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible games",
    )
    parser.add_argument(
        "--ai-delay",
        type=float,
        default=None,
        help="Seconds to wait before each AI move (default: 0.5)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Settings reach the app through the environment so --reload workers see them
    if args.mode:
        os.environ["ROGUECHESS_MODE"] = args.mode
    if args.armies is not None:
        os.environ["ROGUECHESS_ARMY_COUNT"] = str(args.armies)
    if args.seed is not None:
        os.environ["ROGUECHESS_SEED"] = str(args.seed)
    if args.ai_delay is not None:
        os.environ["ROGUECHESS_AI_DELAY"] = str(args.ai_delay)

    logging.getLogger(__name__).info("Starting server on %s:%d", args.host, args.port)
    uvicorn.run("api:app", host=args.host, port=args.port, reload=args.reload)
