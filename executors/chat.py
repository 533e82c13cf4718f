from asyncio import wait_for, TimeoutError
from typing import Optional

from fastapi import HTTPException

import config
from core.errors import InvalidTransition, ProposalConflict
from executors.base import BaseExecutor
from services.session import ChatSession


class ChatExecutor(BaseExecutor):
    """
    Runs one chat message through the session pipeline.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = config.EXECUTOR_TIMEOUT_S if timeout is None else timeout

    async def execute(self, session: ChatSession, text: str = "") -> dict:
        try:
            try:
                reply = await wait_for(session.handle_message(text), timeout=self.timeout)
            except TimeoutError:
                raise HTTPException(status_code=504, detail="Chat processing timed out")

            return self.envelope(reply)

        except HTTPException:
            raise
        except (InvalidTransition, ProposalConflict) as e:
            raise HTTPException(status_code=409, detail=str(e))
        except Exception as e:
            raise HTTPException(
                status_code=500,
                detail=str(e),
            )
