"""Process entry point: ``phoenix-agent`` / ``python -m phoenix_agent``.

Loads configuration, resolves the backend strategy, wires the stores,
prompt builder and Orchestrator, then serves the chat transport until
SIGINT or SIGTERM.
"""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from phoenix_agent.engine.config import AgentConfig
from phoenix_agent.engine.errors import ConfigError, UnknownBackendError
from phoenix_agent.engine.orchestrator import Orchestrator
from phoenix_agent.engine.prompt import build_prompt_builder
from phoenix_agent.engine.strategies import BackendStrategy, resolve_strategy
from phoenix_agent.engine.yaml_config import load_yaml_config
from phoenix_agent.server import ChatServer, OutboundQueue
from phoenix_agent.shared.services import ConversationStore, ModelPreferenceStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phoenix-agent",
        description="Chat with an AI command-line backend over a WebSocket",
    )
    parser.add_argument(
        "--config", metavar="PATH",
        default=os.getenv("PHOENIX_CONFIG"),
        help="YAML config file (default: $PHOENIX_CONFIG)",
    )
    parser.add_argument(
        "--provider",
        help="Backend to drive: gemini, claude-code, openai-codex, opencode, mock",
    )
    parser.add_argument("--host", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port to listen on (default: 3100)")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-file", metavar="PATH",
        help="Also write logs to a rotating file",
    )
    return parser


def load_config(args: argparse.Namespace) -> AgentConfig:
    """Defaults < environment < YAML file < command-line flags."""
    config = AgentConfig.from_env()
    if args.config:
        config = load_yaml_config(args.config, base=config)

    overrides = {
        "provider": args.provider,
        "host": args.host,
        "port": args.port,
        "log_file": args.log_file,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(config, **overrides)


def configure_logging(level: str, log_file: str | None = None) -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # aiohttp logs every request at INFO; keep it quiet unless debugging
    if root.level > logging.DEBUG:
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


async def serve(config: AgentConfig, strategy: BackendStrategy) -> None:
    """Run the agent until a shutdown signal arrives."""
    outbound = OutboundQueue()
    orchestrator = Orchestrator(
        strategy=strategy,
        messages=ConversationStore(config.messages_path),
        model_store=ModelPreferenceStore(config.model_path, default=config.default_model),
        emit=outbound.emit,
        prompt_builder=build_prompt_builder(config),
    )
    server = ChatServer(orchestrator, outbound, config)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            logger.debug("Signal handlers unsupported on this platform")

    orchestrator.start()
    await server.start()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        orchestrator.shutdown()
        await server.stop()


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except (ConfigError, ValueError) as exc:
        parser.exit(2, f"phoenix-agent: invalid configuration: {exc}\n")

    configure_logging(config.log_level, config.log_file)
    logger.info(
        "Starting phoenix-agent provider=%s host=%s port=%d data=%s config=%s",
        config.provider, config.host, config.port, config.data_dir,
        args.config or "<none>",
    )

    try:
        strategy = resolve_strategy(config)
    except UnknownBackendError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    try:
        asyncio.run(serve(config, strategy))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
