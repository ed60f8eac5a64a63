# Schemas package
from .analysis_schema import (
    AnalysisCreate,
    AnalysisCreatedResponse,
    AnalysisListResponse,
    AnalysisReport,
    AnalysisStatusResponse,
    FeatureInput,
    PersonaMessageCreate,
)

__all__ = [
    "FeatureInput",
    "AnalysisCreate",
    "AnalysisCreatedResponse",
    "AnalysisListResponse",
    "AnalysisReport",
    "AnalysisStatusResponse",
    "PersonaMessageCreate",
]
