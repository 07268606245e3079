"""
Validation for deploy configs and cache item fields.

Field checks (`check_name`, `check_url`, ...) raise ValidationError and are
used directly by the deploy preflight. ConfigValidator instead collects
every problem in a DeployConfig so `case validate` can show them all at once.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Iterable, List, Optional

from case_deploy.core.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 32
MAX_URI_LENGTH = 200
MAX_SYMBOL_LENGTH = 10
MAX_SELLER_FEE_BASIS_POINTS = 10_000
MAX_CREATOR_LIMIT = 4


def check_name(name: str) -> None:
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name '{name}' exceeds {MAX_NAME_LENGTH} characters")


def check_url(url: str) -> None:
    if len(url) > MAX_URI_LENGTH:
        raise ValidationError(f"Uri '{url}' exceeds {MAX_URI_LENGTH} characters")


def check_symbol(symbol: str) -> None:
    if len(symbol) > MAX_SYMBOL_LENGTH:
        raise ValidationError(f"Symbol '{symbol}' exceeds {MAX_SYMBOL_LENGTH} characters")


def check_seller_fee_basis_points(fee: int) -> None:
    if not 0 <= fee <= MAX_SELLER_FEE_BASIS_POINTS:
        raise ValidationError(
            f"Seller fee basis points {fee} must be between 0 and {MAX_SELLER_FEE_BASIS_POINTS}"
        )


class ValidationSeverity(Enum):
    ERROR = auto()    # blocks deploy
    WARNING = auto()
    INFO = auto()


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR
    value: Any = None
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.field}: {self.message}"
        return f"{text} ({self.suggestion})" if self.suggestion else text


@dataclass
class ValidationResult:
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def _of(self, severity: ValidationSeverity) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is severity]

    def has_errors(self) -> bool:
        return bool(self._of(ValidationSeverity.ERROR))

    def get_errors(self) -> List[ValidationIssue]:
        return self._of(ValidationSeverity.ERROR)

    def get_warnings(self) -> List[ValidationIssue]:
        return self._of(ValidationSeverity.WARNING)

    def extend(self, issues: Iterable[ValidationIssue]) -> None:
        self.issues.extend(issues)
        self.valid = not self.has_errors()


def run_check(field_name: str, check: Callable[[Any], None], value: Any) -> Optional[ValidationIssue]:
    """Turn a raising field check into an issue (or None when it passes)."""
    try:
        check(value)
    except ValidationError as exc:
        return ValidationIssue(field=field_name, message=str(exc), value=value)
    return None


CustomValidator = Callable[[Any], Optional[List[ValidationIssue]]]


class ConfigValidator:
    """
    Collects every problem in a DeployConfig:
    - item count, symbol, fee and price limits
    - creator count, duplicate addresses and share total
    - hidden settings name/uri/hash shape
    - warnings for legal but unusual settings (free mint, immutable metadata)
    """

    def __init__(self) -> None:
        self._custom: List[CustomValidator] = []

    def register_validator(self, validator: CustomValidator) -> None:
        self._custom.append(validator)

    def validate(self, cfg) -> ValidationResult:
        result = ValidationResult(valid=True)
        result.extend(self._basics(cfg))
        result.extend(self._creators(cfg.creators))
        result.extend(self._hidden(cfg.hidden_settings))
        result.extend(self._warnings(cfg))
        for validator in self._custom:
            try:
                result.extend(validator(cfg) or [])
            except Exception as exc:
                result.extend([ValidationIssue(field="custom", message=f"validator {validator!r} failed: {exc}")])
        return result

    def _basics(self, cfg) -> List[ValidationIssue]:
        issues = [
            run_check("symbol", check_symbol, cfg.symbol),
            run_check("seller_fee_basis_points", check_seller_fee_basis_points, cfg.seller_fee_basis_points),
        ]
        if cfg.number < 0:
            issues.append(ValidationIssue(field="number", message=f"'number' must be >= 0, got {cfg.number}", value=cfg.number))
        if cfg.price < 0:
            issues.append(ValidationIssue(field="price", message=f"'price' must be >= 0, got {cfg.price}", value=cfg.price))
        return [i for i in issues if i is not None]

    def _creators(self, creators) -> List[ValidationIssue]:
        if not creators:
            return [ValidationIssue(
                field="creators",
                message="No creators configured",
                suggestion="add at least one creator with share 100",
            )]
        issues = []
        if len(creators) > MAX_CREATOR_LIMIT:
            issues.append(ValidationIssue(
                field="creators",
                message=f"At most {MAX_CREATOR_LIMIT} creators allowed, got {len(creators)}",
                value=len(creators),
            ))
        total = sum(c.share for c in creators)
        if total != 100:
            issues.append(ValidationIssue(field="creators", message=f"Creator shares must add up to 100, got {total}", value=total))
        addresses = [c.address for c in creators]
        if len(set(addresses)) != len(addresses):
            issues.append(ValidationIssue(field="creators", message="Duplicate creator address"))
        return issues

    def _hidden(self, hidden) -> List[ValidationIssue]:
        if hidden is None:
            return []
        issues = [
            run_check("hidden_settings.name", check_name, hidden.name),
            run_check("hidden_settings.uri", check_url, hidden.uri),
        ]
        if len(hidden.hash.encode("utf-8")) != 32:
            issues.append(ValidationIssue(
                field="hidden_settings.hash",
                message="Hidden settings hash must be exactly 32 bytes",
                value=hidden.hash,
            ))
        return [i for i in issues if i is not None]

    def _warnings(self, cfg) -> List[ValidationIssue]:
        issues = []
        if cfg.price == 0:
            issues.append(ValidationIssue(
                field="price",
                message="Price is 0, items will mint for free",
                severity=ValidationSeverity.WARNING,
                value=cfg.price,
            ))
        if not cfg.is_mutable:
            issues.append(ValidationIssue(
                field="is_mutable",
                message="Metadata will be immutable after mint",
                severity=ValidationSeverity.WARNING,
            ))
        if cfg.number > 10_000:
            issues.append(ValidationIssue(
                field="number",
                message=f"Deploying {cfg.number} items needs a large rent deposit",
                severity=ValidationSeverity.INFO,
                value=cfg.number,
            ))
        return issues


def validate_config(cfg) -> ValidationResult:
    return ConfigValidator().validate(cfg)


def validate_and_log(cfg, logger_instance: Optional[logging.Logger] = None) -> bool:
    """Validate `cfg`, log one event per error/warning, return True when deployable."""
    log = logger_instance or logger
    result = validate_config(cfg)
    for issue in result.issues:
        if issue.severity is ValidationSeverity.INFO:
            continue
        level = logging.ERROR if issue.severity is ValidationSeverity.ERROR else logging.WARNING
        log.log(level, json.dumps({
            "event": "config_issue",
            "severity": issue.severity.name,
            "field": issue.field,
            "message": issue.message,
            "suggestion": issue.suggestion,
        }))
    log.log(
        logging.INFO if result.valid else logging.ERROR,
        json.dumps({"event": "config_validated", "valid": result.valid, "errors": len(result.get_errors())}),
    )
    return result.valid
