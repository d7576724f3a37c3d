"""
Main application entry point - resumable terminal conversation.

Each invocation either resumes a turn that stopped on a tool call or asks the
user for a new line. The process exits when the user submits a blank line or
when the model requests a tool.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from resumechat.chat import Console, ConversationStateMachine, ExitReason, FileToolResultSource
from resumechat.chat.logging_utils import set_module_features
from resumechat.clients import LLMClient
from resumechat.config import Configuration
from resumechat.errors import ChatError, ConfigurationError
from resumechat.history import create_repository

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIGURATION = 2

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Module-to-logger mapping; children inherit the level set on these parents
_MODULE_LOGGER_MAP: dict[str, dict[str, Any]] = {
    "chat": {"loggers": ["resumechat.chat"], "default_level": "INFO"},
    "history": {"loggers": ["resumechat.history"], "default_level": "WARNING"},
    "connection": {"loggers": ["resumechat.clients"], "default_level": "WARNING"},
}


def _configure_advanced_logging(logging_config: dict[str, Any], override_level: str | None = None) -> None:
    """
    Apply the YAML logging section: global level, per-module levels and
    feature flags checked at runtime by the chat logging helpers.

    ``override_level`` (from --log-level) replaces the global level and every
    module level.
    """
    global_level = (override_level or logging_config.get("level", "WARNING")).upper()
    logging.getLogger().setLevel(_LEVEL_MAP.get(global_level, logging.WARNING))

    if "format" in logging_config:
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    modules_config = logging_config.get("modules", {})
    for module_name, mapping in _MODULE_LOGGER_MAP.items():
        module_config = modules_config.get(module_name, {})
        if not isinstance(module_config, dict):
            continue

        module_level = override_level or module_config.get("level", mapping["default_level"])
        level_value = _LEVEL_MAP.get(str(module_level).upper(), logging.WARNING)
        for logger_name in mapping["loggers"]:
            logging.getLogger(logger_name).setLevel(level_value)

        set_module_features(module_name, module_config.get("enable_features", {}))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="resumechat",
        description="Terminal chat that stops on tool calls and resumes from a durable transcript.",
    )
    parser.add_argument("--config", help="YAML file merged over the packaged defaults")
    parser.add_argument("--transcript", help="Path of the JSONL conversation transcript")
    parser.add_argument("--pending-call", help="Path of the pending tool call sidecar")
    parser.add_argument("--tool-result", help="Result text for the pending tool call (overrides the result file)")
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        help="Keep the transcript in memory only; nothing is persisted",
    )
    parser.add_argument("--log-level", choices=sorted(_LEVEL_MAP), help="Override every configured log level")
    return parser


# Configure logging for the application; stdout belongs to the conversation
logging.basicConfig(level=logging.WARNING, format="%(asctime)s - %(levelname)s - %(message)s", stream=sys.stderr)


async def main(argv: list[str] | None = None) -> int:
    """Run one conversation session and return the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = Configuration(args.config)
        _configure_advanced_logging(config.get_logging_config(), args.log_level)

        storage_config = config.get_storage_config()
        if args.transcript:
            storage_config["transcript_path"] = args.transcript
        if args.pending_call:
            storage_config["pending_call_path"] = args.pending_call

        tools = config.get_tool_definitions()
        system_prompt = config.get_system_prompt()
        # Reads the provider, API key and connection pool settings
        llm_client = LLMClient(config)
    except ConfigurationError as e:
        logging.error("Configuration error: %s", e)
        return EXIT_CONFIGURATION

    repo, sidecar = create_repository(storage_config, ephemeral=args.ephemeral)
    tool_results = FileToolResultSource(storage_config["tool_result_path"], inline_result=args.tool_result)

    try:
        async with llm_client:
            conversation = ConversationStateMachine(
                repo,
                sidecar,
                llm_client,
                Console(),
                tool_results,
                tools=tools,
                system_prompt=system_prompt,
            )
            exit_reason = await conversation.run()
    except ChatError as e:
        logging.error("%s: %s", type(e).__name__, e)
        return EXIT_FAILURE

    if exit_reason is ExitReason.TOOL_CALL:
        logging.info("Stopped on tool call; supply the result and run again to resume")
    return EXIT_OK


def cli_main() -> None:
    """Synchronous CLI entrypoint that runs the async main."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received, shutting down...")
        sys.exit(130)


if __name__ == "__main__":
    cli_main()
