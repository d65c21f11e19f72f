from .base import Base
from .catalog import Framework, Control, Requirement, RequirementControlMapping
from .assessment import ControlAssessment
from .qualitative import FindingType, QualitativeReport, QualitativeFinding
from .cross_analysis import (
    AnalysisQueryType,
    AppliedWeightAdjustment,
    CrossReference,
    FrameworkOverlapCache,
    FrameworkPairVersion,
    LinkType,
    MappingSource,
    RelationshipType,
    SavedAnalysisQuery,
    ZInspectionControlLink,
    pair_key,
)

__all__ = [
    "Base",
    "Framework", "Control", "Requirement", "RequirementControlMapping",
    "ControlAssessment",
    "FindingType", "QualitativeReport", "QualitativeFinding",
    "RelationshipType", "MappingSource", "LinkType", "AnalysisQueryType",
    "CrossReference", "FrameworkPairVersion", "FrameworkOverlapCache", "ZInspectionControlLink",
    "AppliedWeightAdjustment", "SavedAnalysisQuery",
    "pair_key",
]
