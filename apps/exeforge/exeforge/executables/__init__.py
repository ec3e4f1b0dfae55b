"""Build orchestration: the request pipeline and its state machine.

Public API:
    BuildOrchestrator   — serves requests, coalescing builds per cache key
    BuildRequest        — package reference plus target OS
    BuildOutcome        — ready / built / failed result
    EcosystemStrategy   — {resolver, builder} pair for one ecosystem
    build_strategies    — production strategy table from settings
"""

from exeforge.executables.orchestrator import (
    VALID_TRANSITIONS,
    ArtifactState,
    BuildOrchestrator,
    validate_transition,
)
from exeforge.executables.strategies import EcosystemStrategy, build_strategies, select_strategy
from exeforge.executables.types import BuildOutcome, BuildRequest, OutcomeStatus

__all__ = [
    "VALID_TRANSITIONS",
    "ArtifactState",
    "BuildOrchestrator",
    "BuildOutcome",
    "BuildRequest",
    "EcosystemStrategy",
    "OutcomeStatus",
    "build_strategies",
    "select_strategy",
    "validate_transition",
]
