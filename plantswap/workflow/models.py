from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from plantswap.imaging.regions import PreserveRegion, RegionDescriptor


class VerificationMode(str, Enum):
    OUTSIDE = "outside"
    PRESERVE = "preserve"


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LogEntry:
    time: datetime
    msg: str

    @classmethod
    def now(cls, msg: str) -> "LogEntry":
        return cls(time=datetime.now(timezone.utc), msg=msg)

    def to_dict(self) -> Dict[str, str]:
        return {"time": self.time.isoformat(), "msg": self.msg}


@dataclass(frozen=True)
class EditSpec:
    """One planned plant replacement within a collection photo."""

    original: str
    replacement: str
    region: RegionDescriptor
    reference_images: Tuple[bytes, ...] = ()
    preserve_region: Optional[PreserveRegion] = None
    verification: VerificationMode = VerificationMode.OUTSIDE
    pot_color: str = "ceramic"
    hints: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], plants_dir: Optional[Path] = None) -> "EditSpec":
        region_data = data.get("region") or data.get("foliage_mask") or data.get("position")
        if not region_data:
            raise ValueError(f"Edit {data.get('replacement')!r} is missing a region")
        preserve_data = data.get("preserve_region") or data.get("pot_region")
        references: List[bytes] = []
        plant_file = data.get("plant_file")
        if plant_file:
            plant_path = Path(plant_file)
            if not plant_path.is_absolute() and plants_dir is not None:
                plant_path = plants_dir / plant_path
            if not plant_path.is_file():
                raise FileNotFoundError(f"Edit {data.get('replacement')!r}: reference image not found: {plant_path}")
            references.append(plant_path.read_bytes())
        mode = data.get("verification") or VerificationMode.OUTSIDE
        return cls(
            original=str(data.get("original", "")),
            replacement=str(data["replacement"]),
            region=RegionDescriptor.from_dict(dict(region_data)),
            reference_images=tuple(references),
            preserve_region=PreserveRegion.from_dict(dict(preserve_data)) if preserve_data else None,
            verification=VerificationMode(mode),
            pot_color=str(data.get("pot_color") or "ceramic"),
            hints={str(k): str(v) for k, v in (data.get("hints") or {}).items()},
        )

    def validate(self) -> None:
        region = self.region
        if region.is_circle:
            if region.radius <= 0:
                raise ValueError(f"Edit {self.replacement!r}: radius must be positive")
        elif region.rx <= 0 or region.ry <= 0:
            raise ValueError(f"Edit {self.replacement!r}: radii must be positive")
        if self.verification == VerificationMode.PRESERVE and self.preserve_region is None:
            raise ValueError(f"Edit {self.replacement!r}: preserve verification needs a preserve_region")
        if not self.replacement.strip():
            raise ValueError("Edit replacement label is empty")

    def prompt_values(self) -> Dict[str, str]:
        values = dict(self.hints)
        values.update(
            original=self.original,
            replacement=self.replacement,
            pot_color=self.pot_color,
        )
        return values

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original": self.original,
            "replacement": self.replacement,
            "region": self.region.to_dict(),
            "preserve_region": self.preserve_region.to_dict() if self.preserve_region else None,
            "verification": self.verification.value,
            "pot_color": self.pot_color,
        }


@dataclass
class Candidate:
    label: str
    step_index: int
    attempt: int
    image: bytes
    score: float
    threshold: float
    mode: str

    @property
    def passed(self) -> bool:
        return self.score >= self.threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "step": self.step_index + 1,
            "attempt": self.attempt,
            "score": round(self.score, 4),
            "threshold": self.threshold,
            "mode": self.mode,
            "passed": self.passed,
        }


@dataclass
class AttemptRecord:
    index: int
    region: RegionDescriptor
    candidates: List[Candidate] = field(default_factory=list)
    log: List[LogEntry] = field(default_factory=list)
    error: Optional[str] = None
    canvas: Optional[bytes] = None

    @property
    def passed(self) -> bool:
        return any(c.passed for c in self.candidates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt": self.index,
            "region": self.region.to_dict(),
            "candidates": [c.to_dict() for c in self.candidates],
            "log": [entry.to_dict() for entry in self.log],
            "error": self.error,
        }


@dataclass
class StepResult:
    step_index: int
    edit: EditSpec
    status: StepStatus
    attempts: List[AttemptRecord] = field(default_factory=list)
    winner: Optional[Candidate] = None
    manual: bool = False
    review: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCEEDED

    @property
    def image(self) -> Optional[bytes]:
        return self.winner.image if self.winner else None

    @property
    def candidates(self) -> List[Candidate]:
        return [c for attempt in self.attempts for c in attempt.candidates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step_index + 1,
            "edit": self.edit.to_dict(),
            "status": self.status.value,
            "attempts": [a.to_dict() for a in self.attempts],
            "winner": self.winner.label if self.winner else None,
            "manual": self.manual,
            "review": self.review,
        }
