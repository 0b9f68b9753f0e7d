"""Configuration loading for the expense pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import yaml

from . import currency, paths
from .exceptions import ConfigurationError


@dataclass(frozen=True, slots=True)
class DatabaseSettings:
    """Location of the SQLite expense store."""

    path: Path


@dataclass(frozen=True, slots=True)
class ParserSettings:
    """Confidence knobs for the response parser stages."""

    default_confidence: float
    repair_confidence_factor: float
    fallback_confidence_cap: float


@dataclass(frozen=True, slots=True)
class ValidationSettings:
    """Financial consistency and auto-correction settings."""

    default_currency: str
    breakdown_abs_tolerance: Decimal
    breakdown_rel_tolerance: Decimal
    mismatch_penalty_weight: float
    correct_stale_years: bool

    def tolerance_for(self, amount: Decimal) -> Decimal:
        """Absolute-or-relative tolerance, whichever is larger."""
        return max(self.breakdown_abs_tolerance, self.breakdown_rel_tolerance * abs(amount))


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Bulk import and duplicate detection settings."""

    duplicate_amount_epsilon: Decimal
    allow_duplicates: bool
    strict_breakdown: bool


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Top-level application configuration."""

    source_path: Path
    database: DatabaseSettings
    parser: ParserSettings
    validation: ValidationSettings
    imports: ImportSettings

    def with_database_path(self, new_path: str | Path) -> AppConfig:
        """Return a copy with an updated database path."""
        new_db = replace(self.database, path=paths.resolve_path(new_path))
        return replace(self, database=new_db)


def _default_config(env: Mapping[str, str]) -> dict[str, Any]:
    return {
        "database": {"path": str(paths.default_database_path(env=env))},
        "parser": {
            "default_confidence": 0.7,
            "repair_confidence_factor": 0.85,
            "fallback_confidence_cap": 0.5,
        },
        "validation": {
            "default_currency": "USD",
            "breakdown_abs_tolerance": "0.02",
            "breakdown_rel_tolerance": "0.01",
            "mismatch_penalty_weight": 1.0,
            "correct_stale_years": True,
        },
        "import": {
            "duplicate_amount_epsilon": "0.01",
            "allow_duplicates": False,
            "strict_breakdown": False,
        },
    }


ENV_OVERRIDE_SPEC: dict[str, tuple[str, type]] = {
    "database.path": (paths.DATABASE_PATH_ENV, str),
    "parser.default_confidence": ("EXPENSECLI_PARSER_DEFAULT_CONFIDENCE", float),
    "parser.repair_confidence_factor": ("EXPENSECLI_PARSER_REPAIR_FACTOR", float),
    "parser.fallback_confidence_cap": ("EXPENSECLI_PARSER_FALLBACK_CAP", float),
    "validation.default_currency": ("EXPENSECLI_DEFAULT_CURRENCY", str),
    "validation.breakdown_abs_tolerance": ("EXPENSECLI_BREAKDOWN_ABS_TOLERANCE", str),
    "validation.breakdown_rel_tolerance": ("EXPENSECLI_BREAKDOWN_REL_TOLERANCE", str),
    "validation.mismatch_penalty_weight": ("EXPENSECLI_MISMATCH_PENALTY_WEIGHT", float),
    "validation.correct_stale_years": ("EXPENSECLI_CORRECT_STALE_YEARS", bool),
    "import.duplicate_amount_epsilon": ("EXPENSECLI_DUPLICATE_EPSILON", str),
    "import.allow_duplicates": ("EXPENSECLI_ALLOW_DUPLICATES", bool),
    "import.strict_breakdown": ("EXPENSECLI_STRICT_BREAKDOWN", bool),
}


def load_config(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from defaults, YAML file, and env overrides."""
    env = dict(os.environ if env is None else env)
    resolved_config_path = _resolve_config_path(config_path, env)
    file_data = _load_yaml(resolved_config_path)
    merged: dict[str, Any] = _deep_merge(_default_config(env), file_data)
    merged = _apply_env_overrides(merged, env)
    return _build_config(merged, resolved_config_path)


def default_config() -> AppConfig:
    """Built-in defaults, ignoring config files and the environment."""
    return _build_config(_default_config({}), paths.default_config_path(env={}))


def _resolve_config_path(config_path: str | Path | None, env: Mapping[str, str]) -> Path:
    if config_path:
        return paths.resolve_path(config_path)
    return paths.default_config_path(env=env)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Config file at {path} is not valid YAML: {exc}") from exc
    if not isinstance(data, MutableMapping):
        raise ConfigurationError(f"Config file at {path} must define a mapping root object.")
    return dict(data)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env_overrides(config: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    config_copy = _deep_merge(config, {})
    for dotted_key, (env_key, expected_type) in ENV_OVERRIDE_SPEC.items():
        if env_key not in env:
            continue
        raw_value = env[env_key]
        try:
            value = _coerce_env_value(raw_value, expected_type)
        except ValueError as exc:
            raise ConfigurationError(
                f"Environment override {env_key} has invalid value '{raw_value}': {exc}"
            ) from exc
        _assign_nested(config_copy, dotted_key.split("."), value)
    return config_copy


def _coerce_env_value(raw: str, expected_type: type) -> Any:
    cleaned = raw.strip()
    if expected_type is bool:
        lowered = cleaned.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ValueError("expected boolean (true/false)")
    if expected_type is float:
        return float(cleaned)
    return cleaned


def _assign_nested(target: MutableMapping[str, Any], keys: list[str], value: Any) -> None:
    current = target
    for key in keys[:-1]:
        if key not in current or not isinstance(current[key], MutableMapping):
            current[key] = {}
        current = current[key]  # type: ignore[assignment]
    current[keys[-1]] = value


def _decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"'{value}' is not a decimal number") from exc
    if not result.is_finite() or result < 0:
        raise ValueError(f"'{value}' must be a non-negative number")
    return result


def _unit_interval(value: Any, *, field: str) -> float:
    number = float(value)
    if not 0.0 <= number <= 1.0:
        raise ValueError(f"{field} must be between 0 and 1, got {number}")
    return number


def _build_config(data: Mapping[str, Any], source_path: Path) -> AppConfig:
    try:
        database = DatabaseSettings(path=paths.resolve_path(data["database"]["path"]))
        parser_cfg = data["parser"]
        parser = ParserSettings(
            default_confidence=_unit_interval(
                parser_cfg["default_confidence"], field="parser.default_confidence"
            ),
            repair_confidence_factor=_unit_interval(
                parser_cfg["repair_confidence_factor"], field="parser.repair_confidence_factor"
            ),
            fallback_confidence_cap=_unit_interval(
                parser_cfg["fallback_confidence_cap"], field="parser.fallback_confidence_cap"
            ),
        )
        val_cfg = data["validation"]
        default_currency = str(val_cfg["default_currency"]).strip().upper()
        if not currency.is_supported(default_currency):
            raise ValueError(f"validation.default_currency '{default_currency}' is not supported")
        validation = ValidationSettings(
            default_currency=default_currency,
            breakdown_abs_tolerance=_decimal(val_cfg["breakdown_abs_tolerance"]),
            breakdown_rel_tolerance=_decimal(val_cfg["breakdown_rel_tolerance"]),
            mismatch_penalty_weight=float(val_cfg["mismatch_penalty_weight"]),
            correct_stale_years=bool(val_cfg["correct_stale_years"]),
        )
        import_cfg = data["import"]
        imports = ImportSettings(
            duplicate_amount_epsilon=_decimal(import_cfg["duplicate_amount_epsilon"]),
            allow_duplicates=bool(import_cfg["allow_duplicates"]),
            strict_breakdown=bool(import_cfg["strict_breakdown"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration structure: {exc}") from exc

    return AppConfig(
        source_path=source_path,
        database=database,
        parser=parser,
        validation=validation,
        imports=imports,
    )
