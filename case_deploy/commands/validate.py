"""
Validate: local deploy config and cache checks, no network.
"""

from __future__ import annotations

from typing import List, Optional

from case_deploy.cache.models import Cache
from case_deploy.config.config_validator import (
    ConfigValidator,
    ValidationIssue,
    ValidationResult,
    ValidationSeverity,
    check_name,
    check_url,
    run_check,
)
from case_deploy.config.deploy_config import DeployConfig
from case_deploy.deploy.delta import check_item_count
from case_deploy.monitoring.progress import NullReporter, StepReporter


def _cache_issues(deploy_config: DeployConfig, cache: Cache) -> List[ValidationIssue]:
    issues: List[Optional[ValidationIssue]] = []
    for index, item in cache:
        for field_name, check, value in (("name", check_name, item.name), ("metadata_link", check_url, item.metadata_link)):
            if not value:
                issues.append(ValidationIssue(field=f"items.{index}.{field_name}", message=f"Missing {field_name} for item {index}"))
            else:
                issues.append(run_check(f"items.{index}.{field_name}", check, value))
    issues.append(run_check("number", lambda n: check_item_count(n, cache.items), deploy_config.number))
    return [i for i in issues if i is not None]


def validate(
    deploy_config: DeployConfig,
    cache: Optional[Cache] = None,
    reporter: Optional[StepReporter] = None,
) -> ValidationResult:
    reporter = reporter or NullReporter()
    result = ConfigValidator().validate(deploy_config)
    if cache is not None:
        result.extend(_cache_issues(deploy_config, cache))

    for issue in result.issues:
        if issue.severity is ValidationSeverity.ERROR:
            reporter.error(str(issue))
        elif issue.severity is ValidationSeverity.WARNING:
            reporter.info(f"[yellow]{issue}[/]")
        else:
            reporter.info(str(issue))
    if result.valid:
        reporter.info("Config is valid.")
    return result
