"""State machine validation for extraction run status transitions.

An extraction run advances through a fixed, forward-only sequence of stages,
each owned by one specialised agent:

    queued -> ingesting -> classifying -> extracting_requirements
    -> extracting_stakeholders -> extracting_decisions -> extracting_timeline
    -> detecting_conflicts -> building_traceability -> generating_documents
    -> completed

From queued or any active stage a run may be diverted to failed or cancelled.
Terminal states: completed, failed, cancelled.
"""
import logging
from typing import Optional

from .models import AgentName, RunStatus

logger = logging.getLogger("tracelayer-core.pipeline_state_machine")


class RunTransitionError(Exception):
    """Raised when an invalid run state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: RunStatus,
        requested_status: RunStatus,
        allowed_transitions: list[RunStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# Ordered processing stages (queued and terminal states excluded)
PIPELINE_STAGES: list[RunStatus] = [
    RunStatus.INGESTING,
    RunStatus.CLASSIFYING,
    RunStatus.EXTRACTING_REQUIREMENTS,
    RunStatus.EXTRACTING_STAKEHOLDERS,
    RunStatus.EXTRACTING_DECISIONS,
    RunStatus.EXTRACTING_TIMELINE,
    RunStatus.DETECTING_CONFLICTS,
    RunStatus.BUILDING_TRACEABILITY,
    RunStatus.GENERATING_DOCUMENTS,
]

TERMINAL_STATUSES: frozenset[RunStatus] = frozenset({
    RunStatus.COMPLETED,
    RunStatus.FAILED,
    RunStatus.CANCELLED,
})

ACTIVE_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.QUEUED, *PIPELINE_STAGES})

# Agent that owns each stage
STAGE_AGENTS: dict[RunStatus, AgentName] = {
    RunStatus.INGESTING: AgentName.INGESTION,
    RunStatus.CLASSIFYING: AgentName.CLASSIFICATION,
    RunStatus.EXTRACTING_REQUIREMENTS: AgentName.REQUIREMENT,
    RunStatus.EXTRACTING_STAKEHOLDERS: AgentName.STAKEHOLDER,
    RunStatus.EXTRACTING_DECISIONS: AgentName.DECISION,
    RunStatus.EXTRACTING_TIMELINE: AgentName.TIMELINE,
    RunStatus.DETECTING_CONFLICTS: AgentName.CONFLICT,
    RunStatus.BUILDING_TRACEABILITY: AgentName.TRACEABILITY,
    RunStatus.GENERATING_DOCUMENTS: AgentName.DOCUMENT,
}

# Project progress (percent) written when a stage starts
STAGE_PROGRESS: dict[RunStatus, int] = {
    RunStatus.INGESTING: 5,
    RunStatus.CLASSIFYING: 15,
    RunStatus.EXTRACTING_REQUIREMENTS: 25,
    RunStatus.EXTRACTING_STAKEHOLDERS: 45,
    RunStatus.EXTRACTING_DECISIONS: 55,
    RunStatus.EXTRACTING_TIMELINE: 65,
    RunStatus.DETECTING_CONFLICTS: 75,
    RunStatus.BUILDING_TRACEABILITY: 85,
    RunStatus.GENERATING_DOCUMENTS: 92,
    RunStatus.COMPLETED: 100,
}


def _build_transition_matrix() -> dict[RunStatus, list[RunStatus]]:
    """Build the transition matrix from the stage order."""
    matrix: dict[RunStatus, list[RunStatus]] = {}
    ordered = [RunStatus.QUEUED, *PIPELINE_STAGES, RunStatus.COMPLETED]
    for current, following in zip(ordered, ordered[1:]):
        matrix[current] = [
            current,             # No-op (allowed)
            following,           # Forward: next stage
            RunStatus.FAILED,    # Diverted: stage raised
            RunStatus.CANCELLED, # Diverted: cooperative cancel
        ]
    for terminal in TERMINAL_STATUSES:
        matrix[terminal] = [terminal]
    return matrix


# Maps current status -> list of allowed next statuses
RUN_TRANSITION_MATRIX: dict[RunStatus, list[RunStatus]] = _build_transition_matrix()


def is_terminal(status: RunStatus) -> bool:
    """Return True for completed, failed and cancelled."""
    return status in TERMINAL_STATUSES


def is_active(status: RunStatus) -> bool:
    """Return True for queued and every processing stage."""
    return status in ACTIVE_STATUSES


def is_transition_valid(current_status: RunStatus, new_status: RunStatus) -> bool:
    """
    Check if a run status transition is valid.

    Args:
        current_status: Current run status
        new_status: Requested new run status

    Returns:
        True if transition is allowed, False otherwise
    """
    return new_status in RUN_TRANSITION_MATRIX.get(current_status, [])


def validate_transition(current_status: RunStatus, new_status: RunStatus) -> None:
    """
    Validate a run status transition and raise exception if invalid.

    Raises:
        RunTransitionError: If the transition is not allowed
    """
    if current_status == new_status:
        logger.debug(f"No-op transition: {current_status.value} → {new_status.value}")
        return

    if not is_transition_valid(current_status, new_status):
        allowed_transitions = RUN_TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]

        if is_terminal(current_status):
            error_msg = (
                f"Invalid run transition: {current_status.value} → {new_status.value}. "
                f"Run is {current_status.value}, which is terminal. Start a new run instead."
            )
        else:
            error_msg = (
                f"Invalid run transition: {current_status.value} → {new_status.value}. "
                f"From {current_status.value}, a run can only move to: {', '.join(allowed_names)}."
            )
            if new_status in PIPELINE_STAGES:
                error_msg += " Stages run in a fixed order and cannot be skipped or repeated."

        logger.warning(f"Blocked transition: {error_msg}")
        raise RunTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid transition: {current_status.value} → {new_status.value}")


def get_allowed_transitions(current_status: RunStatus) -> list[RunStatus]:
    """Get allowed next statuses (excluding the no-op same status)."""
    return [s for s in RUN_TRANSITION_MATRIX.get(current_status, []) if s != current_status]


def stage_index(status: RunStatus) -> int:
    """
    Position of status in PIPELINE_STAGES.

    Returns -1 for queued and for terminal statuses.
    """
    try:
        return PIPELINE_STAGES.index(status)
    except ValueError:
        return -1


def next_stage(status: RunStatus) -> Optional[RunStatus]:
    """Return the stage that follows status, completed after the last stage."""
    if status == RunStatus.QUEUED:
        return PIPELINE_STAGES[0]
    index = stage_index(status)
    if index < 0:
        return None
    if index == len(PIPELINE_STAGES) - 1:
        return RunStatus.COMPLETED
    return PIPELINE_STAGES[index + 1]
