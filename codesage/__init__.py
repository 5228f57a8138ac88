"""CodeSage: multi-language static analysis for code-quality signals."""

__version__ = "0.3.0"

from .config import AnalysisConfig, load_config
from .engine import AnalysisEngine
from .models import AnalysisReport, Issue, IssueCategory, Severity, SourceUnit

__all__ = [
    "AnalysisConfig",
    "AnalysisEngine",
    "AnalysisReport",
    "Issue",
    "IssueCategory",
    "Severity",
    "SourceUnit",
    "load_config",
    "__version__",
]
