"""Interactive chat client for the consultant chat service."""

import argparse
import asyncio
import importlib
import logging
import sys
import time
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from consultant.config import Settings
from consultant.conversation import (
    ChatRequest,
    ChatService,
    ConversationAssembler,
    DomainContext,
    InMemoryConversationStore,
)
from consultant.core.errors import ConfigurationError, ConsultantError
from consultant.core.registry import ToolModule, ToolRegistry
from consultant.core.types import Message
from consultant.logging_config import setup_logging
from consultant.providers.selector import ProviderSelector
from consultant.utils.log_utils import redact_sensitive_data, sanitize_log_message

logger = logging.getLogger(__name__)

DEFAULT_TOOL_FACTORIES = [
    "examples.tools.equipment_tool:create_equipment_module",
    "examples.tools.sensor_tool:create_sensor_module",
]
CLI_USER_ID = "cli"


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Consultant Chat Client")
    parser.add_argument(
        "--env-file", "-e",
        type=str,
        default=".env",
        help="Path to the .env file with provider credentials"
    )
    parser.add_argument(
        "--provider", "-p",
        type=str,
        default=None,
        help="Primary provider (claude, openai, deepseek, gemini); overrides AI_PROVIDER"
    )
    parser.add_argument(
        "--tools", "-t",
        action="append",
        default=None,
        metavar="MODULE:FACTORY",
        help="Tool module factory to register; may be repeated"
    )
    parser.add_argument(
        "--equipment-id",
        type=str,
        default=None,
        help="Equipment the conversation is about"
    )
    parser.add_argument("--equipment-name", type=str, default="", help="Equipment display name")
    parser.add_argument("--equipment-type", type=str, default="", help="Equipment type")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level; overrides LOG_LEVEL"
    )
    return parser.parse_args(argv)


def load_tool_modules(specs: Sequence[str]) -> List[ToolModule]:
    """Import tool module factories given as ``package.module:factory``.

    Raises:
        ConfigurationError: If a spec cannot be imported or called
    """
    modules = []
    for spec in specs:
        module_name, _, factory_name = spec.partition(":")
        if not module_name or not factory_name:
            raise ConfigurationError(f"Invalid tool factory '{spec}', expected MODULE:FACTORY")
        try:
            factory = getattr(importlib.import_module(module_name), factory_name)
        except (ImportError, AttributeError) as e:
            raise ConfigurationError(f"Cannot load tool factory '{spec}': {e}") from e
        modules.append(factory())
    return modules


def build_service(args: argparse.Namespace, settings: Settings) -> ChatService:
    """Wire registry, selector and assembler into a chat service."""
    registry = ToolRegistry.from_modules(*load_tool_modules(args.tools or DEFAULT_TOOL_FACTORIES))
    assembler = ConversationAssembler(
        InMemoryConversationStore(),
        history_limit=settings.history_limit
    )
    return ChatService(registry, ProviderSelector(settings), assembler, settings=settings)


async def chat_loop(service: ChatService, domain_context: Optional[DomainContext] = None) -> None:
    """Run an interactive chat session with the user."""
    start_time = time.time()
    logger.info("Starting chat session")
    print(f"\nConsultant ready with {len(service.registry)} tools. Type 'quit' to exit.")

    query_count = 0
    error_count = 0

    try:
        while True:
            query = (await asyncio.to_thread(input, "\nQuery: ")).strip()
            if query.lower() == "quit":
                logger.info("User requested to quit chat session")
                break
            if not query:
                continue

            query_count += 1
            query_start = time.time()
            try:
                logger.debug("Processing user query", extra=redact_sensitive_data({
                    "query": query,
                    "query_number": query_count
                }))
                response = await service.handle(ChatRequest(
                    new_messages=[Message.user(query)],
                    user_id=CLI_USER_ID,
                    domain_context=domain_context
                ))
                logger.debug("Query processed", extra={
                    "query_number": query_count,
                    "duration_ms": int((time.time() - query_start) * 1000)
                })
                print("\n" + response.final_text)
                if response.tools_used:
                    print(f"\n[{response.provider_name}] tools used: {', '.join(response.tools_used)}")
            except ConsultantError as e:
                error_count += 1
                logger.error("Query processing error", extra={
                    "query_number": query_count,
                    "error": sanitize_log_message(str(e)),
                    "duration_ms": int((time.time() - query_start) * 1000)
                })
                print(f"\nError processing query: {e}")
    finally:
        await service.assembler.drain()
        logger.info("Chat session ended", extra={
            "total_queries": query_count,
            "successful_queries": query_count - error_count,
            "failed_queries": error_count,
            "duration_ms": int((time.time() - start_time) * 1000)
        })


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.provider:
        overrides["ai_provider"] = args.provider
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = Settings(env_file=args.env_file, **overrides)
    setup_logging(settings.log_level, settings.log_dir)

    try:
        service = build_service(args, settings)
        service.startup()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 1

    domain_context = None
    if args.equipment_id:
        domain_context = DomainContext(
            id=args.equipment_id,
            name=args.equipment_name or args.equipment_id,
            kind=args.equipment_type or "unknown"
        )

    await chat_loop(service, domain_context)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_arguments(argv)
    load_dotenv(args.env_file)
    try:
        sys.exit(asyncio.run(run(args)))
    except (KeyboardInterrupt, EOFError):
        print("\nBye.")


if __name__ == "__main__":
    main()
