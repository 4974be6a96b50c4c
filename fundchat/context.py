import logging
from typing import Optional

from .agent import ChatService
from .balance import BalanceManager
from .chain import ChainContext
from .config import OPENROUTER_API_KEY
from .llm import LLMClient
from .memory import ChatMemoryStore

logger = logging.getLogger(__name__)


class AppContext:
    """
    Everything a request handler needs, built once per process.

    init() and shutdown() run on the event loop at startup and exit; handlers
    only read attributes. ChainContext and ChatMemoryStore do their own locking.
    """

    def __init__(
        self,
        chain: Optional[ChainContext] = None,
        memory: Optional[ChatMemoryStore] = None,
        llm: Optional[LLMClient] = None,
    ):
        self.chain = chain or ChainContext()
        self.memory = memory or ChatMemoryStore()
        self.llm = llm or LLMClient()
        self.balance: Optional[BalanceManager] = None
        self.service: Optional[ChatService] = None
        self.init_error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.service is not None

    def init(self) -> "AppContext":
        if self.service is not None:
            return self
        try:
            if not (OPENROUTER_API_KEY or self.llm.headers.get("Authorization")):
                raise RuntimeError("OPENROUTER_API_KEY not set. Add it to your environment or .env")
            self.chain.init()
        except Exception as e:
            self.init_error = str(e)
            logger.error(f"Agent initialization failed: {e}")
            return self
        self.balance = BalanceManager(
            get_balance_wei=self.chain.wallet.get_balance,
            get_address=lambda: self.chain.wallet.address,
        )
        self.service = ChatService(self.llm, self.chain, self.memory, self.balance)
        self.init_error = None
        logger.info("✅ Agent ready")
        return self

    def shutdown(self) -> None:
        self.service = None
        self.balance = None
        self.chain.shutdown()
        logger.info("Agent shut down")
