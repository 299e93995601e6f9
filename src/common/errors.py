"""Error taxonomy shared by the resolver, fetcher, analyser and gate.

Per-node (`FetchError`) and per-item (`AnalysisError`) failures are
recoverable and are logged where they occur. `ResolutionError`,
`PackageSpecError`, `ManifestError` and `CancellationError` are fatal to a
root scan.
"""
from __future__ import annotations

from typing import Optional


class InstallGateError(Exception):
    """Base class for all errors raised by installgate."""


class PackageSpecError(InstallGateError, ValueError):
    """A package spec could not be parsed into name and version."""


class ResolutionError(InstallGateError):
    """The version of a root package could not be resolved."""


class FetchError(InstallGateError):
    """A single dependency manifest could not be fetched or decoded."""


class AnalysisError(InstallGateError):
    """Submission to, or report retrieval from, the analysis service failed."""


class CancellationError(InstallGateError):
    """The scan deadline for a root package expired."""


class UserDeclined(InstallGateError):
    """The user declined to install flagged packages."""


class UnsupportedRegistryError(InstallGateError):
    """No dependency fetcher exists for the requested registry type."""


class ExecutorError(InstallGateError):
    """The package manager binary is missing or exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class ManifestError(InstallGateError):
    """A project manifest or lockfile could not be read."""
