"""Command-line entry point: run one auto-approved research and export it.

    python main.py "state of solid-state batteries" --depth 2 --output report.md

Ctrl-C cancels the run at its next checkpoint.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from deep_research.config import get_config
from deep_research.errors import ConfigurationError
from deep_research.history import HistoryStore
from deep_research.models import Depth, ResearchConfig, ResearchLog
from deep_research.orchestrator import ResearchService, RunState
from deep_research.persistence import persist_result
from deep_research.providers import list_providers
from deep_research.report import to_markdown


def format_log(entry: ResearchLog) -> str:
    line = f"[{entry.type.value:>8}] {entry.message}"
    if entry.token_count:
        line += f" ({entry.token_count} tokens)"
    if isinstance(entry.details, list):
        line += "".join(f"\n           - {item}" for item in entry.details)
    return line


def _install_cancel_handler(service: ResearchService) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, service.cancel)
    except (NotImplementedError, RuntimeError):
        # no loop signal support on this platform; Ctrl-C aborts instead
        pass


async def run_research(service: ResearchService, research_config: ResearchConfig) -> RunState:
    _install_cancel_handler(service)
    async for entry in service.run(research_config):
        print(format_log(entry), file=sys.stderr, flush=True)
    return service.state


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Write a cited, chapter-by-chapter research report.")
    parser.add_argument("topic", help="Research topic or question")
    parser.add_argument(
        "--depth",
        type=int,
        choices=[d.value for d in Depth],
        default=Depth.STANDARD.value,
        help="1 = brief, 2 = standard, 3 = deep (default: 2)",
    )
    parser.add_argument("--provider", choices=list_providers(), help="Override LLM_PROVIDER")
    parser.add_argument("--model", help="Override LLM_MODEL")
    parser.add_argument("--output", help="Write the Markdown report here instead of stdout")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper(), format="%(levelname)s %(name)s: %(message)s")

    cfg = get_config()
    try:
        settings = cfg.provider_settings({"provider": args.provider, "model": args.model})
        research_config = ResearchConfig(query=args.topic, depth=args.depth)
    except (ConfigurationError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    service = ResearchService(settings, config=cfg)
    state = asyncio.run(run_research(service, research_config))
    if state != RunState.COMPLETE:
        print(f"Error: {service.error_message}", file=sys.stderr)
        return 1

    result = service.result
    HistoryStore(cfg.history_path, limit=cfg.history_limit).save(result)
    persist_result(result)

    markdown = to_markdown(result)
    if args.output:
        Path(args.output).expanduser().write_text(markdown, encoding="utf-8")
        print(f"Report written to {args.output} ({result.word_count} characters)", file=sys.stderr)
    else:
        print(markdown)
    return 0


if __name__ == "__main__":
    sys.exit(main())
