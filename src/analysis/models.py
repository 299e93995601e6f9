"""Data models for malware analysis reports and verdicts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from versioning.models import PackageRef


@dataclass(frozen=True)
class Inference:
    """The service's malicious/benign determination."""
    is_malicious: bool
    summary: str = ""


@dataclass(frozen=True)
class AnalysisReport:
    """A completed analysis report; ``inference`` may be missing."""
    analysis_id: str
    inference: Optional[Inference] = None

    @classmethod
    def from_dict(cls, analysis_id: str, data: Dict[str, Any]) -> "AnalysisReport":
        """Build a report from the service's JSON ``report`` object."""
        raw = data.get("inference")
        inference = None
        if isinstance(raw, dict):
            inference = Inference(
                is_malicious=bool(raw.get("isMalware", False)),
                summary=str(raw.get("summary") or ""),
            )
        return cls(analysis_id=analysis_id, inference=inference)


@dataclass(frozen=True)
class AnalysisVerdict:
    """Per-item outcome produced by the analysis queue."""
    ref: PackageRef
    is_malicious: bool
    summary: str = ""
