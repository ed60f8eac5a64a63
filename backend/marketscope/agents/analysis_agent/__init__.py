"""Competitive analysis agent: discovery → matrix → gaps → MVP → personas → positioning → intelligence."""

from .pipeline import process_analysis
from .runner import PipelineRunner, runner
from .stages import AnalysisStatus, MatrixProgress, Stage, advance_stage, can_transition, parse_stage

__all__ = [
    "process_analysis",
    "PipelineRunner",
    "runner",
    "AnalysisStatus",
    "MatrixProgress",
    "Stage",
    "advance_stage",
    "can_transition",
    "parse_stage",
]
