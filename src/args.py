"""Argument parsing functionality for installgate."""

import argparse

from constants import Constants


def build_parser():
    """Build the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="installgate",
        description=(
            "installgate - scan packages for malware before your package manager installs them"
        ),
        epilog="Supported package managers: " + ", ".join(Constants.SUPPORTED_MANAGERS),
        add_help=True,
    )

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--dry-run",
                        dest="DRY_RUN",
                        help="Scan and report, but never run the package manager.",
                        action="store_true")
    parser.add_argument("--insecure-installation",
                        dest="INSECURE",
                        help="Install even when packages are flagged, without asking.",
                        action="store_true")
    parser.add_argument("--no-fail-fast",
                        dest="NO_FAIL_FAST",
                        help="Keep scanning remaining packages after one fails to resolve.",
                        action="store_true")
    parser.add_argument("--scan-timeout",
                        dest="SCAN_TIMEOUT",
                        help="Deadline in seconds for scanning each requested package",
                        action="store",
                        type=float)
    parser.add_argument("--workers",
                        dest="WORKERS",
                        help="Number of concurrent analysis workers",
                        action="store",
                        type=int)
    parser.add_argument("--queue-capacity",
                        dest="QUEUE_CAPACITY",
                        help="Capacity of the analysis queue",
                        action="store",
                        type=int)
    parser.add_argument("--max-in-flight",
                        dest="MAX_IN_FLIGHT",
                        help="Maximum concurrent registry requests",
                        action="store",
                        type=int)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help="Override the npm registry URL",
                        action="store",
                        type=str)
    parser.add_argument("--event-log",
                        dest="EVENT_LOG",
                        help="Append install decisions as JSON lines to this file",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("RUN_COMMAND",
                        help="Package manager command, e.g. npm install lodash",
                        nargs=argparse.REMAINDER)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
