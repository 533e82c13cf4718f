# FILE: services/messages.py
"""
Deterministic user-facing texts. No model involvement.
"""

from typing import Optional

import config
from core.currency import YIELD_TOKEN
from core.errors import Failure, FailureKind
from core.intent import IntentAction
from models.proposal import Proposal
from models.transaction import TransactionRecord, TransactionStatus

HELP_TEXT = (
    "I can help you with IntentArc commands like:\n"
    '• "Send $50 to Alice"\n'
    '• "Pay Bob 20 euros"\n'
    '• "Convert 100 USDC to EURC"\n'
    '• "Put 1000 USDC into savings"\n'
    '• "Withdraw 500 USYC from savings"\n'
    '• "Check my balance"\n\n'
    "Try one of these commands!"
)

CANCELLED_TEXT = "Transaction cancelled. Feel free to try another command!"
NOTHING_PENDING_TEXT = "There is no transaction waiting for confirmation."
CONFIRM_PROMPT = "Reply 'confirm' to proceed or 'cancel' to stop."


def explorer_link(tx_hash: str) -> str:
    return f"{config.BLOCK_EXPLORER_URL.rstrip('/')}/tx/{tx_hash}"


def gas_line(proposal: Proposal) -> str:
    if not proposal.gas_estimate:
        return ""
    suffix = " (estimate, not measured on the network)" if proposal.gas_estimate_source == "fallback" else ""
    return f"\nEstimated gas: {proposal.gas_estimate} USDC{suffix}."


def proposal_message(proposal: Proposal, replaced: bool = False) -> str:
    if proposal.failure is not None:
        return failure_message(proposal.failure)

    action = proposal.action
    if action is IntentAction.BALANCE:
        return balance_message(proposal)

    if action.is_conversion() and proposal.no_op:
        return f"{proposal.amount} {proposal.from_currency} is already in {proposal.to_currency}. Nothing to convert."

    if action.is_transfer():
        name = proposal.recipient
        target = proposal.recipient_address if name == proposal.recipient_address else f"{name} ({proposal.recipient_address})"
        body = f"You're sending {proposal.amount} {proposal.token} to {target}."
    elif action.is_conversion():
        quote = proposal.rate_quote
        body = (
            f"You're converting {quote.amount} {quote.from_token} to about {quote.expected_amount} {quote.to_token}."
            f"\nPrice impact: {quote.price_impact}."
        )
    elif action is IntentAction.DEPOSIT:
        quote = proposal.yield_quote
        body = (
            f"You're moving {proposal.amount} {proposal.from_currency} into savings ({YIELD_TOKEN}) at {quote.apy}% APY."
            f"\nProjected yield over a year: {quote.projected_annual_yield} {proposal.from_currency}."
        )
    else:
        quote = proposal.yield_quote
        period = f"{quote.days_held} days"
        if quote.holding_period_source == "placeholder":
            period += " (assumed, no deposit on record)"
        body = (
            f"You're withdrawing {proposal.amount} {YIELD_TOKEN} from savings to {proposal.to_currency}."
            f"\nYield earned: {quote.yield_earned} over {period} at {quote.apy}% APY."
        )

    prefix = "Replaced your previous request.\n" if replaced else ""
    return f"{prefix}{body}{gas_line(proposal)}\n{CONFIRM_PROMPT}"


def balance_message(proposal: Proposal) -> str:
    lines = []
    for line in proposal.balances:
        text = f"• {line.token}: {line.balance}"
        if line.apy is not None:
            text += f" (earning {line.apy}% APY)"
        lines.append(text)
    if len(lines) == 1:
        return "Your current balance:\n" + lines[0]
    return "Your current balances:\n" + "\n".join(lines)


def failure_message(failure: Failure) -> str:
    if failure.kind is FailureKind.PARSE:
        return HELP_TEXT
    if failure.kind is FailureKind.GATEWAY:
        return f"{failure.message} Nothing was submitted."
    return failure.message


def submitted_message(record: TransactionRecord) -> str:
    if record.status is TransactionStatus.FAILED and record.hash is None:
        return f"Transaction was not submitted. {record.failure.message if record.failure else ''}".rstrip()
    return (
        "Transaction submitted!\n\n"
        f"Your {record.action.value} of {record.amount} {record.token} is being processed on Arc network.\n"
        f"Track it: {explorer_link(record.hash)}"
    )


def settlement_message(record: TransactionRecord) -> Optional[str]:
    if record.hash is None:
        return submitted_message(record)
    if record.status is TransactionStatus.CONFIRMED:
        detail = f"{record.amount} {record.token}"
        if record.action.is_transfer():
            detail = f"transferred {detail} to {record.recipient_address}"
        elif record.action.is_conversion():
            detail = f"converted {detail} to about {record.expected_amount}"
        elif record.action is IntentAction.DEPOSIT:
            detail = f"deposited {detail} into savings"
        else:
            detail = f"withdrew {detail} from savings, yield earned {record.yield_earned}"
        return f"Transaction confirmed!\n\nSuccessfully {detail}.\n{explorer_link(record.hash)}"
    if record.status is TransactionStatus.FAILED:
        return f"Transaction failed on chain.\n{explorer_link(record.hash)}"
    if record.timed_out:
        return f"Status unknown, still pending. Check the explorer: {explorer_link(record.hash)}"
    if record.poll_cancelled:
        return f"Stopped tracking {record.hash}; it may still confirm. Check the explorer: {explorer_link(record.hash)}"
    return None
