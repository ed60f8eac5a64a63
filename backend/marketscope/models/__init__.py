from .analysis import GUID, Analysis, UserFeature
from .competitor import Competitor, CompetitorFeature, NormalizedFeatureGroup
from .insights import BlueOceanInsight, GapAnalysisItem, MarketIntelligence, PositioningData
from .matrix import ComparisonParameter, FeatureMatrixScore
from .persona import Persona, PersonaChatMessage, SimulatedReview

__all__ = [
    "GUID",
    "Analysis",
    "UserFeature",
    "Competitor",
    "CompetitorFeature",
    "NormalizedFeatureGroup",
    "ComparisonParameter",
    "FeatureMatrixScore",
    "GapAnalysisItem",
    "BlueOceanInsight",
    "PositioningData",
    "MarketIntelligence",
    "Persona",
    "PersonaChatMessage",
    "SimulatedReview",
]
