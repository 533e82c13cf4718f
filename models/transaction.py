# FILE: models/transaction.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from core.errors import Failure
from core.intent import IntentAction


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in {TransactionStatus.CONFIRMED, TransactionStatus.FAILED}


# -----------------------------
# Status report (Gateway → Orchestrator)
# -----------------------------
class StatusReport(BaseModel):
    status: TransactionStatus
    confirmations: int = Field(0, ge=0)


# -----------------------------
# Submission request (Orchestrator → Gateway)
# -----------------------------
class SubmissionRequest(BaseModel):
    """
    Resolved parameters of a confirmed Proposal. Never the raw intent.
    """

    model_config = ConfigDict(frozen=True)

    action: IntentAction
    sender: str
    to: str
    amount: str
    token: str
    # None selects the native-currency path
    token_address: Optional[str] = None
    # Target token of a swap, deposit or withdrawal; None for transfers
    to_token: Optional[str] = None


# -----------------------------
# Transaction record (Orchestrator → caller)
# -----------------------------
class TransactionRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hash: Optional[str] = None
    status: TransactionStatus = TransactionStatus.PENDING
    confirmations: int = 0

    action: IntentAction
    sender: str
    amount: str
    token: str
    recipient_address: Optional[str] = Field(None, alias="recipientAddress")

    expected_amount: Optional[str] = Field(None, alias="expectedAmount")
    yield_earned: Optional[str] = Field(None, alias="yieldEarned")

    failure: Optional[Failure] = None
    # Polling stopped before a terminal receipt was seen: status unknown, still pending
    timed_out: bool = Field(False, alias="timedOut")
    poll_cancelled: bool = Field(False, alias="pollCancelled")

    submitted_at: Optional[datetime] = Field(None, alias="submittedAt")
    settled_at: Optional[datetime] = Field(None, alias="settledAt")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def apply_status(self, report: StatusReport) -> bool:
        """
        Apply a polled status. Terminal records never change again.
        Returns True when the status changed.
        """
        if self.is_terminal:
            return False
        self.confirmations = max(self.confirmations, report.confirmations)
        if report.status is self.status:
            return False
        self.status = report.status
        if self.is_terminal:
            self.settled_at = datetime.now(timezone.utc)
        return True

    def mark_failed(self, failure: Failure) -> None:
        if self.is_terminal:
            return
        self.status = TransactionStatus.FAILED
        self.failure = failure
        self.settled_at = datetime.now(timezone.utc)
