"""
Configuration: environment settings, deploy config file and validation.
"""

from case_deploy.config.config import Settings, env_bool, parse_solana_config
from case_deploy.config.config_validator import (
    ConfigValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    check_name,
    check_seller_fee_basis_points,
    check_symbol,
    check_url,
    run_check,
    validate_and_log,
    validate_config,
)
from case_deploy.config.deploy_config import DeployConfig, load_deploy_config

__all__ = [
    "Settings",
    "env_bool",
    "parse_solana_config",
    "ConfigValidator",
    "ValidationIssue",
    "ValidationResult",
    "ValidationSeverity",
    "check_name",
    "check_seller_fee_basis_points",
    "check_symbol",
    "check_url",
    "run_check",
    "validate_and_log",
    "validate_config",
    "DeployConfig",
    "load_deploy_config",
]
