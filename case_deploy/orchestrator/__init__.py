"""
Deploy orchestration: account creation, config line writes and collection attach.
"""

from case_deploy.orchestrator.deploy_orchestrator import (
    VALID_TRANSITIONS,
    DeployOrchestrator,
    DeployResult,
    DeployState,
    OrchestratorConfig,
)

__all__ = [
    "VALID_TRANSITIONS",
    "DeployOrchestrator",
    "DeployResult",
    "DeployState",
    "OrchestratorConfig",
]
