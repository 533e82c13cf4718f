# core/errors.py
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class FailureKind(str, Enum):
    PARSE = "parse"
    RESOLUTION = "resolution"
    GATEWAY = "gateway"
    SUBMISSION = "submission"


class Failure(BaseModel):
    """
    Serializable failure attached to a Proposal or TransactionRecord.
    """

    kind: FailureKind
    reason: str
    message: str
    detail: Optional[Dict[str, Any]] = None


# ---------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------
class IntentArcError(Exception):
    kind: FailureKind = FailureKind.RESOLUTION

    def __init__(self, reason: str, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.detail = detail

    def to_failure(self) -> Failure:
        return Failure(kind=self.kind, reason=self.reason, message=self.message, detail=self.detail)


class ParseFailure(IntentArcError):
    kind = FailureKind.PARSE


class ResolutionFailure(IntentArcError):
    kind = FailureKind.RESOLUTION


class GatewayFailure(IntentArcError):
    kind = FailureKind.GATEWAY


class SubmissionFailure(IntentArcError):
    kind = FailureKind.SUBMISSION


# ---------------------------------------------------------------------
# State machine misuse (programming / sequencing errors, not user input)
# ---------------------------------------------------------------------
class InvalidTransition(Exception):
    def __init__(self, current: str, attempted: str):
        super().__init__(f"Cannot {attempted} while {current}")
        self.current = current
        self.attempted = attempted


class ProposalConflict(Exception):
    """A proposal is already pending and replacement was not requested."""
