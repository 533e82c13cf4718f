from abc import ABC, abstractmethod

from services.session import ChatSession, SessionReply


class BaseExecutor(ABC):
    """
    Base contract for all executors.
    Executors drive one session call and return a response dict.
    No parsing, no state machine logic here.
    """

    @abstractmethod
    async def execute(self, session: ChatSession, text: str = "") -> dict:
        pass

    @staticmethod
    def envelope(reply: SessionReply) -> dict:
        return {
            "type": reply.type,
            "data": reply.data,
            "message": reply.message,
        }
