# FILE: services/chain_gateway.py
"""
Collaborator contracts used by the resolver and the orchestrator.

The core only ever calls these through call_gateway(), which bounds every
call with a timeout and turns transport problems into GatewayFailure.
Failed calls are not retried here.
"""

from abc import ABC, abstractmethod
from asyncio import TimeoutError, wait_for
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

import config
from core.errors import GatewayFailure, IntentArcError
from models.proposal import RateQuote
from models.transaction import StatusReport, SubmissionRequest

T = TypeVar("T")


class ChainGateway(ABC):
    """
    Read/write primitives against the network.
    """

    @abstractmethod
    async def resolve_recipient(self, name_or_address: str) -> Optional[str]:
        pass

    @abstractmethod
    async def estimate_gas(self, sender: str, to: str, amount: str, token_address: Optional[str] = None) -> str:
        """Fee in the native currency as a decimal string. token_address=None is a native transfer."""
        pass

    @abstractmethod
    async def get_balance(self, address: str, token_address: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def submit(self, request: SubmissionRequest) -> str:
        """Returns the transaction hash. Raises SubmissionFailure when no hash can be obtained."""
        pass

    @abstractmethod
    async def get_status(self, tx_hash: str) -> StatusReport:
        pass


class RateSource(ABC):
    @abstractmethod
    async def get_rate_quote(self, from_token: str, to_token: str, amount: str) -> RateQuote:
        pass


class YieldSource(ABC):
    @abstractmethod
    async def get_current_apy(self) -> str:
        pass

    @abstractmethod
    async def get_deposit_date(self, address: str) -> Optional[datetime]:
        pass

    @abstractmethod
    async def record_deposit(self, address: str, when: datetime) -> None:
        pass


async def call_gateway(awaitable: Awaitable[T], *, operation: str, timeout: Optional[float] = None) -> T:
    """
    Await a collaborator call with a bounded timeout.
    Typed IntentArc errors pass through untouched.
    """
    limit = config.GATEWAY_TIMEOUT_S if timeout is None else timeout
    try:
        return await wait_for(awaitable, timeout=limit)
    except TimeoutError:
        raise GatewayFailure(
            reason="gateway_timeout",
            message="The network did not respond in time. Please try again.",
            detail={"operation": operation, "timeout_s": limit},
        )
    except IntentArcError:
        raise
    except Exception as e:
        raise GatewayFailure(
            reason="gateway_unavailable",
            message="The network is unavailable right now. Please try again.",
            detail={"operation": operation, "error": str(e)},
        )
