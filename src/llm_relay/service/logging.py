"""
Rich-formatted logging for chain runs.

Provides logging with three verbosity levels:
- Normal: Clean, rich-formatted logs for run lifecycle events and routing
- Verbose (--verbose/-v): Additional detail including step payloads
- Debug (--debug): Low-level DEBUG messages, unformatted for debugging

Usage:
    from .logging import get_service_logger, setup_service_logging

    # At startup
    setup_service_logging(verbose=config.VERBOSE, debug=config.DEBUG)

    # Create logger for a module
    slog = get_service_logger(__name__)
    slog.run_started(run_id, chain.name, len(chain.models))
"""

import json
import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

SERVICE_THEME = Theme({
    "run.id": "dim yellow",
    "chain.name": "bold blue",
    "model.name": "bold magenta",
    "provider": "cyan",
    "billing": "dim cyan",
    "timing": "dim cyan",
    "checkpoint": "dim green",
    "status.ok": "bold green",
    "status.error": "bold red",
    "status.warn": "bold yellow",
})

# Global state
_verbose = False
_debug = False
_console: Console | None = None


def get_console() -> Console:
    """Get the shared console instance."""
    global _console
    if _console is None:
        _console = Console(theme=SERVICE_THEME, stderr=True)
    return _console


def setup_service_logging(verbose: bool = False, debug: bool = False) -> None:
    """
    Configure logging for the process.

    Args:
        verbose: Enable verbose logging (shows payloads)
        debug: Enable debug logging (low-level DEBUG messages, unformatted)
    """
    global _verbose, _debug

    _verbose = verbose
    _debug = debug

    level = logging.DEBUG if debug else logging.INFO

    if debug:
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(name)s | %(threadName)s | %(levelname)s | %(message)s",
            datefmt="%H:%M:%S",
            force=True,
        )
    else:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(
                console=get_console(),
                show_path=False,
                rich_tracebacks=True,
                tracebacks_show_locals=verbose,
                markup=True,
            )],
            force=True,
        )

    noisy_loggers = [
        "httpx",
        "httpcore",
        "urllib3",
        "urllib3.connectionpool",
        "openai",
        "openai._base_client",
        "anthropic",
        "anthropic._base_client",
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING if not debug else logging.INFO)


def _short(run_id: str) -> str:
    return f"[run.id]\\[{run_id[:8]}][/run.id]"


class ServiceLogger:
    """
    Rich-formatted logger for chain execution.

    Provides structured logging methods for run lifecycle events.
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)
        self._console = get_console()

    # -------------------------------------------------------------------------
    # Standard logging methods (delegate to underlying logger)
    # -------------------------------------------------------------------------

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        self._logger.exception(msg, *args, **kwargs)

    # -------------------------------------------------------------------------
    # Structured run logging methods
    # -------------------------------------------------------------------------

    def run_started(self, run_id: str, chain_name: str, steps: int) -> None:
        self._logger.info(
            f"{_short(run_id)} chain [chain.name]{chain_name}[/chain.name] "
            f"[dim]{steps} step(s)[/dim] [status.ok]started[/status.ok]"
        )

    def step_started(self, run_id: str, index: int, total: int, model_name: str) -> None:
        self._logger.info(
            f"{_short(run_id)} step {index + 1}/{total} [model.name]{model_name}[/model.name]"
        )

    def step_routed(self, run_id: str, model_name: str, provider: str, routed_via: str,
                    billed_to: str, tokens: int, elapsed_ms: float) -> None:
        """Log where a step's response came from and who pays for it."""
        self._logger.info(
            f"{_short(run_id)} [model.name]{model_name}[/model.name] "
            f"via [provider]{provider}[/provider] [billing]({routed_via}, billed to {billed_to})[/billing] "
            f"[dim]{tokens} tokens[/dim] [timing]{elapsed_ms:.0f}ms[/timing]"
        )

    def step_retry(self, run_id: str, model_name: str, error: str) -> None:
        self._logger.warning(
            f"{_short(run_id)} [model.name]{model_name}[/model.name] "
            f"[status.warn]user keys failed, retrying via subscription[/status.warn]: {error}"
        )

    def segmented(self, run_id: str, model_name: str, segments: int, input_chars: int) -> None:
        self._logger.info(
            f"{_short(run_id)} [model.name]{model_name}[/model.name] "
            f"input of {input_chars} chars split into [bold]{segments}[/bold] segments"
        )

    def checkpoint_saved(self, run_id: str, checkpoint_type: str, checkpoint_id: str) -> None:
        """Log checkpoint persistence (verbose only)."""
        if _verbose:
            self._logger.info(
                f"{_short(run_id)} [checkpoint]{checkpoint_type} checkpoint {checkpoint_id[:8]} saved[/checkpoint]"
            )

    def run_completed(self, run_id: str, total_tokens: int, elapsed_ms: float) -> None:
        self._logger.info(
            f"{_short(run_id)} [status.ok]completed[/status.ok] "
            f"[dim]{total_tokens} tokens[/dim] [timing]{elapsed_ms:.0f}ms[/timing]"
        )

    def run_failed(self, run_id: str, error: str, elapsed_ms: float) -> None:
        self._logger.error(
            f"{_short(run_id)} [status.error]failed[/status.error] [timing]{elapsed_ms:.0f}ms[/timing]: {error}"
        )

    def run_cancelled(self, run_id: str) -> None:
        self._logger.info(f"{_short(run_id)} [status.warn]cancelled[/status.warn]")

    def step_payload(self, label: str, data: dict[str, Any]) -> None:
        """Log a request payload (verbose only)."""
        if _verbose:
            self._log_payload(label, data)

    def _log_payload(self, label: str, data: dict[str, Any], max_content_len: int = 500) -> None:
        def truncate(obj: Any, depth: int = 0) -> Any:
            if depth > 5:
                return "..."
            if isinstance(obj, dict):
                return {k: truncate(v, depth + 1) for k, v in obj.items()}
            if isinstance(obj, list):
                return [truncate(item, depth + 1) for item in obj[:10]]  # Max 10 items
            if isinstance(obj, str) and len(obj) > max_content_len:
                return obj[:max_content_len] + "..."
            return obj

        truncated = truncate(data)
        try:
            formatted = json.dumps(truncated, indent=2, default=str)
            self._console.print(f"[dim]{label}:[/dim]")
            self._console.print(formatted, highlight=True)
        except (TypeError, ValueError):
            self._logger.debug(f"{label}: {truncated}")


def get_service_logger(name: str) -> ServiceLogger:
    """Get a ServiceLogger instance for the given module name."""
    return ServiceLogger(name)
