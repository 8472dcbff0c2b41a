"""Command line interface for podupload package."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from . import __version__
from .cli_progress import SessionProgressDisplay, _human_size, render_configuration_summary
from .exceptions import PodUploadError
from .models import SessionSnapshot, SessionState, UploadConfig, UploadRequest
from .orchestrator import UploadOrchestrator


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130

_ENV_PREFIX = "PODUPLOAD_"


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
        level = getattr(logging, (log_level or env_level).upper(), logging.INFO)

    from rich.logging import RichHandler

    handler = RichHandler(
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


def _build_config(
    environ: Mapping[str, str],
    backend: Optional[str],
    profile: Optional[str],
    deadline: Optional[float],
) -> UploadConfig:
    """Merge command line options over PODUPLOAD_* variables."""
    env: Dict[str, str] = dict(environ)
    if profile:
        env[f"{_ENV_PREFIX}PROFILE"] = profile
    if backend:
        env[f"{_ENV_PREFIX}BACKEND"] = backend
    if deadline is not None:
        if deadline <= 0:
            raise CLIError("--deadline must be positive")
        env[f"{_ENV_PREFIX}UPLOAD_DEADLINE_MS"] = str(int(deadline * 1000))

    try:
        config = UploadConfig.from_env(env)
        if not env.get(f"{_ENV_PREFIX}MAX_FILE_SIZE_BYTES"):
            limit = UploadConfig.for_backend(config.backend).max_file_size_bytes
            config = config.with_overrides(max_file_size_bytes=limit)
    except PodUploadError as exc:
        raise CLIError(str(exc)) from exc
    return config


def _exit_code(snapshot: SessionSnapshot) -> int:
    if snapshot.state is SessionState.COMPLETE:
        return EXIT_OK
    if snapshot.state is SessionState.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_FAILED


async def _run_upload(source: Path, config: UploadConfig, as_json: bool) -> int:
    request = UploadRequest.from_path(source)
    display = None if as_json else SessionProgressDisplay(request.filename)

    try:
        async with UploadOrchestrator(config) as orchestrator:
            if display is not None:
                orchestrator.subscribe(display.on_snapshot)
            handle = orchestrator.start(request)
            final = await handle.wait()
    except PodUploadError as exc:
        raise CLIError(str(exc)) from exc

    if as_json:
        print(json.dumps(final.to_dict(), indent=2))
    return _exit_code(final)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="podupload",
        description="Upload a podcast media file and print its public URL and duration.",
    )
    parser.add_argument("source", nargs="?", type=Path, help="Media file to upload")
    parser.add_argument(
        "-b",
        "--backend",
        choices=["storage", "cdn"],
        default=None,
        help="Storage backend (default from PODUPLOAD_BACKEND or storage)",
    )
    parser.add_argument(
        "-p",
        "--profile",
        choices=["default", "production", "serverless"],
        default=None,
        help="Timing profile (default from PODUPLOAD_PROFILE or default)",
    )
    parser.add_argument(
        "-d",
        "--deadline",
        type=float,
        default=None,
        help="Upload deadline in seconds",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the final session snapshot as JSON instead of a progress bar",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Disable all logging (errors are still printed)")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"podupload {__version__}",
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
            return EXIT_FAILED

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.source is None:
        parser.print_help()
        return EXIT_OK

    source = Path(args.source).expanduser()
    if not source.is_file():
        print(f"ERROR: source is not a file: {source}", file=sys.stderr)
        return EXIT_FAILED

    try:
        config = _build_config(os.environ, args.backend, args.profile, args.deadline)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILED

    if not args.json:
        render_configuration_summary(
            {
                "Source": str(source),
                "Size": _human_size(source.stat().st_size),
                "Backend": config.backend,
                "Endpoint": (config.storage_api_url if config.backend == "storage" else config.cdn_api_url)
                or "(missing)",
                "Max Size": _human_size(config.max_file_size_bytes),
                "Deadline": f"{config.upload_deadline:g}s",
                "Resolve Attempts": config.resolve_max_retries,
                "Env File": str(used_env_file) if used_env_file else "-",
                "Logging": effective_log_mode,
            }
        )

    try:
        return asyncio.run(_run_upload(source, config, as_json=args.json))
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILED
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return EXIT_CANCELLED


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
