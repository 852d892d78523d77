"""
Command-line entry point for chatnav.

Wires the web search handler, the LLM service and a transport adapter together and
runs them until the user quits (console) or the server is stopped (HTTP).

Usage:
    # Interactive console
    python -m chatnav.chat

    # HTTP transport
    python -m chatnav.chat --http --port 8080

    # Longer page views, more results, Groq as the default model provider
    python -m chatnav.chat --summary-length 3000 --results 8 --provider groq

Environment:
    SERPER_API_KEY        Serper key used by !search
    <PROVIDER>_API_KEY    Key of each LLM provider (OPENAI_API_KEY, GROQ_API_KEY, ...)
    CHATNAV_LOG_LEVEL     Default for --log-level
"""

import argparse
import asyncio
import atexit
import logging
import os

# Try to use GNU readline for better line editing (Mac/Linux)
# Falls back to standard readline on Windows
try:
    import gnureadline as readline
except ImportError:
    import readline

import chz
import structlog

from chatnav.adapters import Adapter, ConsoleAdapter, HttpAdapter
from chatnav.config import AppConfig
from chatnav.llm import LlmService
from chatnav.message_service import MessageService
from chatnav.tools.web_browser import ReadabilityFetcher, SearchCommandHandler, SerperBackend, WebSearchService

# Application-level default, longer than the service default
DEFAULT_SUMMARY_LENGTH = 1500


def configure_logging(level: str) -> None:
    """Routes structlog through stdlib logging so both share one level and format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_config(args: argparse.Namespace) -> AppConfig:
    config = AppConfig.from_env()
    browser = chz.replace(
        config.browser,
        content_summary_length=args.summary_length,
        search_results_limit=args.results,
    )
    llm = chz.replace(config.llm, default_provider=args.provider)
    return chz.replace(config, browser=browser, llm=llm)


def build_message_service(config: AppConfig, adapter: Adapter | None) -> MessageService:
    service = WebSearchService(
        search_backend=SerperBackend(),
        fetcher=ReadabilityFetcher(),
        config=config.browser,
    )
    return MessageService(
        adapter=adapter,
        search_handler=SearchCommandHandler(service, config=config.browser),
        llm_service=LlmService(config=config.llm),
        config=config,
    )


async def main(args: argparse.Namespace) -> None:
    config = build_config(args)
    logger = structlog.stdlib.get_logger(component=__name__)

    if args.http:
        adapter = HttpAdapter(host=args.host, port=args.port)
        message_service = build_message_service(config, adapter)
        await message_service.initialize()
        logger.info("serving_http", host=args.host, port=args.port)
        try:
            await adapter.serve()
        finally:
            await message_service.close()
    else:
        adapter = ConsoleAdapter()
        message_service = build_message_service(config, adapter)
        await message_service.initialize()
        await adapter.run()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Chat with web search and guided browsing",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--http",
        default=False,
        action="store_true",
        help="Serve the HTTP API instead of the interactive console",
    )
    parser.add_argument(
        "--host",
        metavar="HOST",
        type=str,
        default="127.0.0.1",
        help="Interface the HTTP API binds to",
    )
    parser.add_argument(
        "--port",
        metavar="PORT",
        type=int,
        default=8080,
        help="Port the HTTP API listens on",
    )
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        type=str,
        default=os.environ.get("CHATNAV_LOG_LEVEL", "warning"),
        help="Logging level (debug, info, warning, error)",
    )
    parser.add_argument(
        "--summary-length",
        metavar="CHARS",
        type=int,
        default=int(os.environ.get("CONTENT_SUMMARY_LENGTH", DEFAULT_SUMMARY_LENGTH)),
        help="Characters of page text per view and per !more chunk",
    )
    parser.add_argument(
        "--results",
        metavar="N",
        type=int,
        default=int(os.environ.get("SEARCH_RESULTS_LIMIT", 5)),
        help="Search results listed per search",
    )
    parser.add_argument(
        "--provider",
        metavar="ID",
        type=str,
        default=os.environ.get("DEFAULT_PROVIDER", "openai"),
        help="Default LLM provider (openai, google, groq, claude, openrouter)",
    )
    return parser.parse_args(argv)


def cli() -> None:
    args = parse_args()

    configure_logging(args.log_level)

    if not args.http:
        histfile = os.path.join(os.path.expanduser("~"), ".chatnav_history")
        try:
            readline.read_history_file(histfile)
            readline.set_history_length(10000)
        except FileNotFoundError:
            pass
        atexit.register(readline.write_history_file, histfile)

    asyncio.run(main(args))


if __name__ == "__main__":
    cli()
