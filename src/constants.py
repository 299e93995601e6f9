"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONNECTION_ERROR = 2
    INSTALL_BLOCKED = 3
    INTERRUPTED = 130


class RegistryType(Enum):
    """Package registries the guard can resolve dependency graphs for.

    Args:
        Enum (string): Registry identifiers (also the package manager binary).
    """

    NPM = "npm"
    PNPM = "pnpm"
    YARN = "yarn"
    BUN = "bun"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    SUPPORTED_MANAGERS = [
        RegistryType.NPM.value,
        RegistryType.PNPM.value,
        RegistryType.YARN.value,
        RegistryType.BUN.value,
    ]
    INSTALL_ACTIONS = {
        RegistryType.NPM.value: ["install", "i", "add"],
        RegistryType.PNPM.value: ["add", "install", "i"],
        RegistryType.YARN.value: ["add", "install", ""],
        RegistryType.BUN.value: ["install", "i", "add"],
    }
    # Actions that only restore the project manifest and never take package names
    MANIFEST_ONLY_ACTIONS = {
        RegistryType.YARN.value: ["install", ""],
    }
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV = "INSTALLGATE_LOG_LEVEL"
    REQUEST_TIMEOUT = 10  # Timeout in seconds for registry HTTP requests

    # Scan tunables
    SCAN_TIMEOUT_SEC = 180  # One deadline per root package scan
    FETCH_MAX_IN_FLIGHT = 16
    ANALYSIS_QUEUE_CAPACITY = 100
    ANALYSIS_WORKERS = 10

    # Malware analysis service (SafeDep Malysis, Connect JSON protocol)
    MALYSIS_API_URL = "https://api.safedep.io"
    MALYSIS_SERVICE = "safedep.services.malysis.v1.MalwareAnalysisService"
    MALYSIS_ECOSYSTEM_NPM = "ECOSYSTEM_NPM"
    MALYSIS_STATUS_COMPLETED = "ANALYSIS_STATUS_COMPLETED"
    MALYSIS_REQUEST_TIMEOUT = 30
    MALYSIS_POLL_INTERVAL_SEC = 1.0
    MALYSIS_REPORT_TIMEOUT_SEC = 120
    ENV_SAFEDEP_API_KEY = "SAFEDEP_API_KEY"
    ENV_SAFEDEP_TENANT_ID = "SAFEDEP_TENANT_ID"

    # Configuration file
    CONFIG_DIR_ENV = "INSTALLGATE_CONFIG_DIR"
    DEFAULT_CONFIG_DIR = "~/.config/installgate"
    CONFIG_FILE = "config.yml"
    EVENT_LOG_FILE = "events.log"

    # Project manifests read for bare installs
    PACKAGE_JSON_FILE = "package.json"
    NPM_LOCK_FILE = "package-lock.json"
    NPM_SHRINKWRAP_FILE = "npm-shrinkwrap.json"
    PNPM_LOCK_FILE = "pnpm-lock.yaml"
