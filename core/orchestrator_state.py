# core/orchestrator_state.py
from enum import Enum


class OrchestratorState(str, Enum):
    """
    Confirmation state machine positions.
    """

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    SUBMITTING = "submitting"
    POLLING = "polling"
    SETTLED = "settled"

    # -----------------------------
    # Semantic helpers (SAFE)
    # -----------------------------
    def has_pending_proposal(self) -> bool:
        return self is OrchestratorState.AWAITING_CONFIRMATION

    def is_in_flight(self) -> bool:
        return self in {OrchestratorState.SUBMITTING, OrchestratorState.POLLING}
