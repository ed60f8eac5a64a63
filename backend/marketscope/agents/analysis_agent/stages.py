"""Pipeline state machine.

The analysis record carries two persisted fields:
  - ``status``: processing | completed | failed
  - ``stage``:  the last stage marker whose data is durably written

Stage markers advance strictly in declaration order of ``Stage``. The matrix
stage additionally emits ``MatrixProgress`` sub-states, persisted as
``matrix_progress_{completed}/{total}``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...errors import InvalidStageTransitionError
from ...models import Analysis


class AnalysisStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Stage(str, Enum):
    COMPETITORS = "competitors"
    COMPETITORS_COMPLETE = "competitors_complete"
    NORMALIZING_FEATURES = "normalizing_features"
    FEATURES = "features"
    MATRIX_COMPLETE = "matrix_complete"
    GAPS = "gaps"
    GAPS_COMPLETE = "gaps_complete"
    MVP = "mvp"
    MVP_COMPLETE = "mvp_complete"
    PERSONAS = "personas"
    PERSONAS_COMPLETE = "personas_complete"
    POSITIONING = "positioning"
    POSITIONING_COMPLETE = "positioning_complete"
    MARKET_INTELLIGENCE = "market_intelligence"
    MARKET_INTELLIGENCE_COMPLETE = "market_intelligence_complete"
    COMPLETE = "complete"


@dataclass(frozen=True)
class MatrixProgress:
    """``completed`` of ``total`` score cells are persisted."""

    completed: int
    total: int

    def __post_init__(self):
        if self.total <= 0 or not 0 <= self.completed <= self.total:
            raise ValueError(f"Invalid matrix progress {self.completed}/{self.total}")

    @property
    def value(self) -> str:
        return f"matrix_progress_{self.completed}/{self.total}"


StageMarker = Union[Stage, MatrixProgress]

_STAGE_ORDER = list(Stage)
_MATRIX_PROGRESS_RE = re.compile(r"^matrix_progress_(\d+)/(\d+)$")


def parse_stage(text: str) -> StageMarker:
    """Parse a persisted stage marker. Raises ValueError for unknown markers."""
    match = _MATRIX_PROGRESS_RE.match(text or "")
    if match:
        return MatrixProgress(int(match.group(1)), int(match.group(2)))
    try:
        return Stage(text)
    except ValueError:
        raise ValueError(f"Unknown stage marker: {text!r}") from None


def matrix_progress(text: str) -> Optional[MatrixProgress]:
    """Return the matrix sub-state for *text*, or None for any other marker."""
    try:
        marker = parse_stage(text)
    except ValueError:
        return None
    return marker if isinstance(marker, MatrixProgress) else None


def can_transition(current: StageMarker, target: StageMarker) -> bool:
    """True if *target* may directly follow *current*."""
    if isinstance(target, MatrixProgress):
        if current is Stage.FEATURES:
            return True
        return (
            isinstance(current, MatrixProgress)
            and current.total == target.total
            and target.completed > current.completed
        )
    if isinstance(current, MatrixProgress):
        return target is Stage.MATRIX_COMPLETE
    idx = _STAGE_ORDER.index(current)
    return idx + 1 < len(_STAGE_ORDER) and _STAGE_ORDER[idx + 1] is target


def advance_stage(db: Session, analysis: Analysis, target: StageMarker) -> None:
    """Move *analysis* to *target* and commit.

    Anything pending on the session is committed in the same transaction, so
    the marker never runs ahead of the data it describes.
    """
    current = parse_stage(analysis.stage)
    if not can_transition(current, target):
        raise InvalidStageTransitionError(
            f"Cannot move analysis {analysis.id} from {_to_text(current)!r} to {_to_text(target)!r}"
        )
    analysis.stage = _to_text(target)
    analysis.updated_at = datetime.utcnow()
    db.commit()


def _to_text(marker: StageMarker) -> str:
    return marker.value
