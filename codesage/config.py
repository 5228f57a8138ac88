"""Analysis configuration: thresholds, weights and the debt cost table.

Values come from dataclass defaults, optionally overridden by the
``config.toml`` file under ``$CODESAGE_HOME`` (``~/.codesage`` by default).
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml

from .errors import ConfigurationError
from .models import IssueCategory, Severity

logger = logging.getLogger(__name__)

BASE_DIR = Path(os.environ.get("CODESAGE_HOME", str(Path.home() / ".codesage"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DuplicationConfig:
    window: int = 50
    min_length: Optional[int] = None
    normalize_identifiers: bool = True

    @property
    def effective_min_length(self) -> int:
        return self.window if self.min_length is None else self.min_length


@dataclass(frozen=True)
class Thresholds:
    max_function_lines: int = 50
    max_cyclomatic: int = 10
    critical_cyclomatic: int = 25
    max_cognitive: int = 15
    max_parameters: int = 5
    max_nesting_depth: int = 4
    max_nesting_guard: int = 64
    max_duplication_ratio: float = 0.10
    min_maintainability: float = 50.0


@dataclass(frozen=True)
class MaintainabilityWeights:
    """``MI = 100 - a*ln(avg_cc) - b*ln(loc) + c*comment_ratio``."""
    a: float = 6.0
    b: float = 4.0
    c: float = 20.0


_SEVERITY_MINUTES = {
    Severity.P0: 120,
    Severity.P1: 60,
    Severity.P2: 30,
    Severity.P3: 10,
}


def _category_minutes(category: IssueCategory, base: int) -> int:
    if category is IssueCategory.SECURITY:
        return base * 3 // 2
    if category in (IssueCategory.STYLE, IssueCategory.DOCUMENTATION):
        return base // 2
    return base


DEFAULT_COSTS: Dict[Tuple[IssueCategory, Severity], int] = {
    (category, severity): _category_minutes(category, minutes)
    for category in IssueCategory
    for severity, minutes in _SEVERITY_MINUTES.items()
}


@dataclass(frozen=True)
class DebtCostTable:
    """Remediation minutes per (category, severity) plus the complexity penalty."""
    costs: Dict[Tuple[IssueCategory, Severity], int] = field(
        default_factory=lambda: dict(DEFAULT_COSTS)
    )
    excess_threshold: int = 10
    minutes_per_excess_point: int = 5

    def cost(self, category: IssueCategory, severity: Severity) -> int:
        return self.costs[(category, severity)]


@dataclass(frozen=True)
class AnalysisConfig:
    duplication: DuplicationConfig = field(default_factory=DuplicationConfig)
    thresholds: Thresholds = field(default_factory=Thresholds)
    maintainability: MaintainabilityWeights = field(default_factory=MaintainabilityWeights)
    debt: DebtCostTable = field(default_factory=DebtCostTable)
    workers: int = 4

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> "AnalysisConfig":
        """Raise ``ConfigurationError`` on the first invalid value."""
        dup = self.duplication
        _require_int("duplication.window", dup.window, minimum=1)
        _require_int("duplication.min_length", dup.effective_min_length, minimum=1)
        if dup.effective_min_length < dup.window:
            raise ConfigurationError(
                f"duplication.min_length ({dup.effective_min_length}) must be "
                f">= duplication.window ({dup.window})"
            )
        if not isinstance(dup.normalize_identifiers, bool):
            raise ConfigurationError("duplication.normalize_identifiers must be a boolean")

        th = self.thresholds
        for name in (
            "max_function_lines", "max_cyclomatic", "critical_cyclomatic",
            "max_cognitive", "max_parameters", "max_nesting_depth", "max_nesting_guard",
        ):
            _require_int(f"thresholds.{name}", getattr(th, name), minimum=1)
        if th.critical_cyclomatic <= th.max_cyclomatic:
            raise ConfigurationError(
                "thresholds.critical_cyclomatic must be greater than thresholds.max_cyclomatic"
            )
        _require_number("thresholds.max_duplication_ratio", th.max_duplication_ratio, 0.0, 1.0)
        _require_number("thresholds.min_maintainability", th.min_maintainability, 0.0, 100.0)

        for name in ("a", "b", "c"):
            _require_number(f"maintainability.{name}", getattr(self.maintainability, name), 0.0)

        debt = self.debt
        _require_int("debt.excess_threshold", debt.excess_threshold, minimum=0)
        _require_int("debt.minutes_per_excess_point", debt.minutes_per_excess_point, minimum=0)
        for category in IssueCategory:
            for severity in Severity:
                key = (category, severity)
                if key not in debt.costs:
                    raise ConfigurationError(
                        f"debt.costs is missing {category.value}/{severity.value}"
                    )
                _require_int(
                    f"debt.costs.{category.value}.{severity.value}", debt.costs[key], minimum=0,
                )

        _require_int("workers", self.workers, minimum=1)
        return self

    # ------------------------------------------------------------------
    # Construction from a TOML document
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        known = {"duplication", "thresholds", "maintainability", "debt", "engine"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")

        debt_data = dict(data.get("debt", {}))
        cost_overrides = debt_data.pop("costs", {})
        costs = dict(DEFAULT_COSTS)
        for category_name, per_severity in cost_overrides.items():
            category = _parse_enum(IssueCategory, category_name, "debt.costs")
            if not isinstance(per_severity, dict):
                raise ConfigurationError(f"debt.costs.{category_name} must be a table")
            for severity_name, minutes in per_severity.items():
                severity = _parse_enum(Severity, severity_name, f"debt.costs.{category_name}")
                costs[(category, severity)] = minutes

        engine = data.get("engine", {})
        unknown = set(engine) - {"workers"}
        if unknown:
            raise ConfigurationError(f"Unknown key(s) in [engine]: {', '.join(sorted(unknown))}")

        config = cls(
            duplication=_build_section(DuplicationConfig, data.get("duplication", {}), "duplication"),
            thresholds=_build_section(Thresholds, data.get("thresholds", {}), "thresholds"),
            maintainability=_build_section(
                MaintainabilityWeights, data.get("maintainability", {}), "maintainability",
            ),
            debt=_build_section(DebtCostTable, dict(debt_data, costs=costs), "debt"),
            workers=engine.get("workers", 4),
        )
        return config.validate()


def load_config(path: Optional[Path] = None) -> AnalysisConfig:
    """Load and validate configuration.

    Args:
        path: TOML file to read; defaults to ``CONFIG_FILE``.

    Returns:
        The validated configuration.  A missing file yields the defaults.
    """
    config_path = Path(path) if path is not None else CONFIG_FILE
    if not config_path.exists():
        if path is not None:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        logger.debug("No config file at %s, using defaults", config_path)
        return AnalysisConfig().validate()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except toml.TomlDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {exc}") from exc

    logger.debug("Loaded configuration from %s", config_path)
    return AnalysisConfig.from_dict(data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _build_section(section_cls: Any, values: Dict[str, Any], name: str) -> Any:
    if not isinstance(values, dict):
        raise ConfigurationError(f"[{name}] must be a table")
    allowed = {f.name for f in fields(section_cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown key(s) in [{name}]: {', '.join(sorted(unknown))}")
    return section_cls(**values)


def _parse_enum(enum_cls: Any, value: str, where: str) -> Any:
    for member in enum_cls:
        if member.value == value:
            return member
    raise ConfigurationError(f"Unknown {enum_cls.__name__} '{value}' in {where}")


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")


def _require_number(
    name: str, value: Any, minimum: float, maximum: Optional[float] = None,
) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {value!r}")
    if value < minimum or (maximum is not None and value > maximum):
        upper = f" and <= {maximum}" if maximum is not None else ""
        raise ConfigurationError(f"{name} must be >= {minimum}{upper}, got {value}")
