"""Reconciliation pipeline: normalize, resolve, score, detect, commit."""

from fundrecon.domain.reconciliation.claims import FactClaim
from fundrecon.domain.reconciliation.commit import CommitResult, ReconciliationCommitter
from fundrecon.domain.reconciliation.detect import (
    ConflictDetector,
    Evaluation,
    EvaluationOutcome,
)
from fundrecon.domain.reconciliation.engine import IngestReport, ReconciliationEngine
from fundrecon.domain.reconciliation.extract import ExtractedFunding, extract_funding
from fundrecon.domain.reconciliation.locks import KeyedLock
from fundrecon.domain.reconciliation.names import normalize_name
from fundrecon.domain.reconciliation.normalize import (
    DefaultFactNormalizer,
    FactNormalizer,
    NormalizationReport,
    NormalizedRecord,
)
from fundrecon.domain.reconciliation.records import (
    ApiRecord,
    ManualRecord,
    NewsRecord,
    RawRecord,
    RoundReport,
)
from fundrecon.domain.reconciliation.resolve import IDENTITY_KEY, EntityResolver, Resolution
from fundrecon.domain.reconciliation.scoring import (
    REVIEWER_SOURCE_ID,
    ConfidenceScorer,
    SourceRegistry,
)

__all__ = [
    "IDENTITY_KEY",
    "REVIEWER_SOURCE_ID",
    "ApiRecord",
    "CommitResult",
    "ConfidenceScorer",
    "ConflictDetector",
    "DefaultFactNormalizer",
    "EntityResolver",
    "Evaluation",
    "EvaluationOutcome",
    "ExtractedFunding",
    "FactClaim",
    "FactNormalizer",
    "IngestReport",
    "KeyedLock",
    "ManualRecord",
    "NewsRecord",
    "NormalizationReport",
    "NormalizedRecord",
    "RawRecord",
    "ReconciliationCommitter",
    "ReconciliationEngine",
    "Resolution",
    "RoundReport",
    "SourceRegistry",
    "extract_funding",
    "normalize_name",
]
