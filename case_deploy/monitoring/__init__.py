"""
Monitoring package.

Prometheus metrics and console progress reporting.
"""

from case_deploy.monitoring.metrics_rich import DeployMetrics
from case_deploy.monitoring.progress import NullReporter, StepReporter

__all__ = [
    "DeployMetrics",
    "NullReporter",
    "StepReporter",
]
