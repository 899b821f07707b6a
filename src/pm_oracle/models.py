"""Oracle models: market listings and terminal resolutions."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from src.pm_common.enums import ResolutionOutcome


@dataclass
class OracleMarket:
    id: str
    question: str
    probability: float
    volume: float
    is_resolved: bool
    url: str
    resolution: str | None = None
    resolution_time: datetime | None = None
    resolution_probability: float | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "OracleMarket":
        return cls(
            id=str(raw["id"]),
            question=raw.get("question", ""),
            probability=float(raw.get("probability") or 0.5),
            volume=float(raw.get("volume") or 0),
            is_resolved=bool(raw.get("isResolved", False)),
            url=raw.get("url", ""),
            resolution=raw.get("resolution"),
            resolution_time=_from_millis(raw.get("resolutionTime")),
            resolution_probability=_optional_float(raw.get("resolutionProbability")),
        )


@dataclass
class Resolution:
    market_id: str
    outcome: ResolutionOutcome
    probability: float
    resolved_at: datetime | None

    @property
    def cancelled(self) -> bool:
        return self.outcome == ResolutionOutcome.CANCEL

    @property
    def resolved_yes(self) -> bool:
        return self.outcome == ResolutionOutcome.YES


def outcome_from_resolution(resolution: str | None) -> ResolutionOutcome:
    """YES and NO map directly; MKT, CANCEL and anything else count as cancelled."""
    if resolution == "YES":
        return ResolutionOutcome.YES
    if resolution == "NO":
        return ResolutionOutcome.NO
    return ResolutionOutcome.CANCEL


def _from_millis(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)
