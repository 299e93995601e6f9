"""CLI entry point for guarding a package manager command.

Install commands, bare installs of the project manifest included, are
scanned through the install gate before the real package manager runs;
every other command is passed straight through.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, List

from constants import Constants, ExitCodes
from cli_config import default_event_log_path, load_gate_config
from common.eventlog import configure_event_log
from common.errors import AnalysisError, ExecutorError, UnsupportedRegistryError
from common.logging_utils import configure_logging
from common.progress import ProgressCounter
from analysis.malysis import MalysisClient
from executor import CommandExecutor
from install_gate import GateState, InstallGate
from package_managers import parse_command

logger = logging.getLogger(__name__)


def _setup_logging(args: Any) -> None:
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
        file_handler.setFormatter(formatter)
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def _parse_run_command(args: Any) -> List[str]:
    """Extract and validate the wrapped command from parsed args.

    Raises:
        SystemExit: If the command is empty or uses an unsupported manager.
    """
    cmd = list(getattr(args, "RUN_COMMAND", None) or [])
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]

    if not cmd:
        sys.stderr.write(
            "Error: No command provided.\n"
            "Usage: installgate [options] <manager> <action> [args...]\n\n"
            "Supported package managers: "
            + ", ".join(Constants.SUPPORTED_MANAGERS)
            + "\n"
        )
        sys.exit(2)
    return cmd


def _log_progress(label: str, done: int, total: int) -> None:
    if total:
        logger.debug("%s: %d/%d", label, done, total)
    else:
        logger.debug("%s: %d packages", label, done)


def run_guard(args: Any, executor: Any = None) -> int:
    """Scan and run the wrapped command; return the process exit code.

    Args:
        args: Parsed CLI arguments namespace.
        executor: Optional CommandExecutor override.
    """
    _setup_logging(args)
    cmd = _parse_run_command(args)
    command = parse_command(cmd)
    executor = executor or CommandExecutor()

    gated = command.is_install or command.is_manifest_install
    if command.manager not in Constants.SUPPORTED_MANAGERS or not gated:
        logger.debug("Passing through: %s", " ".join(cmd))
        try:
            return executor.run(cmd)
        except ExecutorError as exc:
            logger.error("%s", exc)
            return exc.returncode or ExitCodes.GENERAL_ERROR.value

    try:
        config = load_gate_config(args)
    except ValueError as exc:
        logger.error("Configuration error: %s", exc)
        return ExitCodes.GENERAL_ERROR.value

    try:
        client = MalysisClient.from_config(config)
    except AnalysisError as exc:
        logger.error("Error while creating a malware analysis client: %s", exc)
        return ExitCodes.GENERAL_ERROR.value

    event_log = config.event_log or default_event_log_path()
    try:
        configure_event_log(event_log)
    except OSError as exc:
        logger.warning("Cannot write event log %s: %s", event_log, exc)

    fetch_progress = ProgressCounter("fetched")
    analysis_progress = ProgressCounter("analyzed")
    fetch_progress.register_callback(_log_progress)
    analysis_progress.register_callback(_log_progress)

    gate = InstallGate(
        command,
        client,
        config=config,
        executor=executor,
        fetch_progress=fetch_progress,
        analysis_progress=analysis_progress,
    )
    try:
        outcome = gate.run()
    except UnsupportedRegistryError as exc:
        logger.error("%s", exc)
        return ExitCodes.GENERAL_ERROR.value
    except ExecutorError as exc:
        logger.error("%s", exc)
        return exc.returncode or ExitCodes.GENERAL_ERROR.value

    if outcome.state == GateState.ERROR:
        for err in outcome.errors:
            sys.stderr.write(f"Error: {err}\n")
    elif outcome.state == GateState.BLOCKED:
        sys.stderr.write("Installation blocked: flagged packages were not confirmed.\n")
    return outcome.exit_code


def run_command(args: Any) -> None:
    """Run the guard and exit with its status."""
    try:
        exit_code = run_guard(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        exit_code = ExitCodes.INTERRUPTED.value
    sys.exit(exit_code)
