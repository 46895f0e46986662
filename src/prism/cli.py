"""Command-line interface for PRISM.

Ask questions from the terminal or run the streaming HTTP server.

Usage:
    prism ask "How is Jane Doe doing in mock interviews?"
    prism ask "Who are the top 5 candidates?" --visual --model pro
    prism serve --port 8000
"""

import argparse
import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from prism import __version__
from prism.config import settings
from prism.models import Stage
from prism.pipeline.orchestrator import open_pipeline

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=1)


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser.

    Returns:
        Configured ArgumentParser with all commands and arguments.
    """
    parser = argparse.ArgumentParser(
        prog="prism",
        description="PRISM — conversational analytics over candidate data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  prism ask "How is Jane Doe doing?"
  prism ask "Top 5 candidates by score" --visual
  prism serve --host 0.0.0.0 --port 8000
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    ask_parser = subparsers.add_parser(
        "ask",
        help="Ask a question and print the event stream",
        description="Run the pipeline once, printing each stage event as a JSON line",
    )
    ask_parser.add_argument("question", type=str, help="Free-text question")
    ask_parser.add_argument(
        "--visual",
        action="store_true",
        help="Also request a chart specification",
    )
    ask_parser.add_argument(
        "--model",
        type=str,
        choices=["flash", "pro"],
        default="flash",
        help="Backend model variant (default: flash)",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP server",
    )
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind host")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    subparsers.add_parser(
        "version",
        help="Show version information",
    )

    return parser


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context.

    Spins up a new event loop in a dedicated thread to avoid conflicts
    with any existing event loop.
    """
    def _target():
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    future = _executor.submit(_target)
    return future.result()


async def _ask(question: str, visual: bool, model: str) -> int:
    """Stream one question's events to stdout; exit code 1 on an error event."""
    status = 0
    async with open_pipeline() as pipeline:
        async for event in pipeline.run(question, visual_mode=visual, model=model):
            sys.stdout.write(event.to_line())
            sys.stdout.flush()
            if event.stage is Stage.ERROR:
                status = 1
    return status


def cmd_ask(args: argparse.Namespace) -> int:
    """Execute the ask command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        return _run_async(_ask(args.question, args.visual, args.model))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.error("Ask failed: %s", e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Execute the serve command."""
    import uvicorn

    uvicorn.run("prism.api:app", host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Execute the version command."""
    print(f"PRISM v{__version__}")
    print("Conversational analytics pipeline")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "ask":
        return cmd_ask(args)
    elif args.command == "serve":
        return cmd_serve(args)
    elif args.command == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 0


def cli_entry() -> None:
    """Console script entry point for setuptools."""
    sys.exit(main())


if __name__ == "__main__":
    cli_entry()
