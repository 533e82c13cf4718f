from asyncio import wait_for, TimeoutError
from typing import Optional

from fastapi import HTTPException

import config
from core.errors import InvalidTransition
from executors.base import BaseExecutor
from services.session import ChatSession


class ConfirmationExecutor(BaseExecutor):
    """
    Confirms or cancels the pending proposal of a session.
    """

    def __init__(self, decision: str, timeout: Optional[float] = None):
        if decision not in ("confirm", "cancel"):
            raise ValueError(f"Unknown decision: {decision}")
        self.decision = decision
        self.timeout = config.EXECUTOR_TIMEOUT_S if timeout is None else timeout

    async def execute(self, session: ChatSession, text: str = "") -> dict:
        try:
            if self.decision == "cancel":
                return self.envelope(session.cancel())

            try:
                reply = await wait_for(session.confirm(), timeout=self.timeout)
            except TimeoutError:
                raise HTTPException(status_code=504, detail="Transaction submission timed out")

            return self.envelope(reply)

        except HTTPException:
            raise
        except InvalidTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception as e:
            raise HTTPException(
                status_code=500,
                detail=str(e),
            )
