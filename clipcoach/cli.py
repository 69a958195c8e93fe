"""Command line interface for clipcoach."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    AnalysisStatusDisplay,
    UploadProgressDisplay,
    console,
    render_chat_message,
    render_configuration_summary,
    render_notification,
    render_record,
    render_suggestions,
)
from .errors import ChatBusyError, ChatPreconditionError, ClipcoachError
from .models import AnalyzerConfig, PollOutcome
from .orchestrator import SUGGESTED_QUESTIONS, ChatSession, VideoAnalyzer
from .utils.events import (
    ANALYSIS_COMPLETED,
    ANALYSIS_FAILED,
    ANALYSIS_UPDATED,
    CHAT_FAILED,
    CHAT_MESSAGE,
    POLL_TIMEOUT,
    UPLOAD_COMPLETE,
    EventEmitter,
)

QUIT_COMMANDS = {"/quit", "/exit", "/q"}


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug, --log-level or LOG_LEVEL is
    provided. Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level or "INFO").upper(), logging.INFO)

    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _env_number(name: str, cast, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise CLIError(f"{name} must be a number, got {raw!r}") from exc


def _build_config(
    poll_interval: Optional[float] = None,
    max_attempts: Optional[int] = None,
) -> AnalyzerConfig:
    defaults = AnalyzerConfig()
    interval = poll_interval
    if interval is None:
        interval = _env_number("CLIPCOACH_POLL_INTERVAL", float, defaults.poll_interval)
    attempts = max_attempts
    if attempts is None:
        attempts = _env_number("CLIPCOACH_MAX_POLL_ATTEMPTS", int, defaults.max_poll_attempts)

    if interval < 0:
        raise CLIError("poll interval must not be negative")
    if attempts < 1:
        raise CLIError("max poll attempts must be at least 1")

    return AnalyzerConfig(
        poll_interval=interval,
        max_poll_attempts=attempts,
        records_table=os.getenv("CLIPCOACH_RECORDS_TABLE", defaults.records_table),
        storage_bucket=os.getenv("CLIPCOACH_STORAGE_BUCKET", defaults.storage_bucket),
    )


def _validate_question(text: str, max_length: int) -> str:
    question = text.strip()
    if not question:
        raise CLIError("question is empty")
    if len(question) > max_length:
        raise CLIError(f"question is too long ({len(question)}/{max_length} characters)")
    return question


async def _ask(session: ChatSession, text: str, max_length: int) -> bool:
    try:
        question = _validate_question(text, max_length)
        result = await session.send(question)
    except (CLIError, ChatBusyError, ChatPreconditionError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return False
    return result.success


async def _chat_loop(session: ChatSession, max_length: int, events: EventEmitter) -> None:
    for message in session.history:
        render_chat_message(message)
    if not session.history:
        render_suggestions(SUGGESTED_QUESTIONS)
    events.on(CHAT_MESSAGE, render_chat_message)

    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold blue]> [/bold blue]")
        except EOFError:
            return
        text = line.strip()
        if not text or text.lower() in QUIT_COMMANDS:
            return
        if text.isdigit() and 1 <= int(text) <= len(SUGGESTED_QUESTIONS):
            text = SUGGESTED_QUESTIONS[int(text) - 1]
        await _ask(session, text, max_length)


async def _run_analysis(
    source: Optional[Path],
    record_id: Optional[str],
    api_url: str,
    api_key: Optional[str],
    config: AnalyzerConfig,
    wait: bool,
    chat: bool,
    questions: Sequence[str],
) -> int:
    status_display = AnalysisStatusDisplay()

    async with VideoAnalyzer(api_url, api_key=api_key, config=config) as analyzer:
        events = analyzer.events
        events.on(UPLOAD_COMPLETE, render_notification)
        events.on(ANALYSIS_UPDATED, status_display.on_update)
        events.on(ANALYSIS_COMPLETED, status_display.on_settled)
        events.on(ANALYSIS_FAILED, status_display.on_settled)
        events.on(POLL_TIMEOUT, status_display.on_settled)
        events.on(CHAT_FAILED, render_notification)

        if record_id is None:
            assert source is not None
            display = UploadProgressDisplay(source.name)
            display.start()
            result = await analyzer.analyze(source, display.get_callback())
            display.complete(result)
            if not result.success:
                return 1
            record_id = result.record_id
            console.print(f"[dim]Record id:[/dim] {record_id}")
            if not wait:
                analyzer.stop_polling(record_id)
                return 0
        else:
            store = await analyzer.load(record_id)
            render_record(store.record)

        store = analyzer.store(record_id)
        if not store.record.is_terminal:
            poll = await analyzer.wait(record_id)
            if poll.outcome != PollOutcome.COMPLETED:
                return 1
        elif not store.record.has_analysis:
            return 1

        if not chat:
            return 0

        session = analyzer.chat(record_id)
        if questions:
            events.on(CHAT_MESSAGE, render_chat_message)
            ok = True
            for question in questions:
                ok = await _ask(session, question, config.max_message_length) and ok
            return 0 if ok else 1

        await _chat_loop(session, config.max_message_length, events)
        return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipcoach",
        description="Upload a video for AI analysis, wait for the result and chat about it.",
    )
    parser.add_argument("source", nargs="?", type=Path, help="Video file (MP4, MOV or AVI)")
    parser.add_argument(
        "-r",
        "--record-id",
        default=None,
        help="Resume an existing analysis instead of uploading a file",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Backend URL (default from CLIPCOACH_API_URL)",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return right after the analysis is requested",
    )
    parser.add_argument(
        "--no-chat",
        action="store_true",
        help="Exit once the analysis has finished",
    )
    parser.add_argument(
        "-q",
        "--ask",
        action="append",
        default=[],
        metavar="QUESTION",
        help="Ask a question non-interactively (repeatable)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between status checks (default from CLIPCOACH_POLL_INTERVAL or 5)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Maximum status checks (default from CLIPCOACH_MAX_POLL_ATTEMPTS or 60)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"clipcoach {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.source is None and args.record_id is None:
        parser.print_help()
        return 0

    source = Path(args.source).expanduser() if args.source is not None else None
    if source is not None and args.record_id is None and not source.is_file():
        print(f"ERROR: source is not a file: {source}", file=sys.stderr)
        return 1

    api_url = args.api_url or os.getenv("CLIPCOACH_API_URL")
    if not api_url:
        print("ERROR: CLIPCOACH_API_URL environment variable is not set", file=sys.stderr)
        return 1
    api_key = os.getenv("CLIPCOACH_API_KEY")

    try:
        config = _build_config(args.poll_interval, args.max_attempts)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    render_configuration_summary(
        {
            "Source": str(source) if source and not args.record_id else "-",
            "Record": args.record_id or "(new)",
            "API": api_url,
            "API Key": "set" if api_key else "(missing)",
            "Polling": f"every {config.poll_interval:g}s, max {config.max_poll_attempts}",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_analysis(
                source=source,
                record_id=args.record_id,
                api_url=api_url,
                api_key=api_key,
                config=config,
                wait=not args.no_wait,
                chat=not args.no_chat,
                questions=args.ask,
            )
        )
    except (CLIError, ClipcoachError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
