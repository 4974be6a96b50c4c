import json
import logging
from typing import Any, Dict, List, Optional

from .balance import BalanceManager, is_transaction_message
from .chain import ChainContext
from .formatting import format_agent_error
from .llm import LLMClient
from .memory import ChatMemoryStore
from .payload import parse_hybrid_payload
from .registry import active_network
from .tools import tools_schema, dispatch_tool, TOOLS_BY_NAME

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 4
NO_ACTION_REPLY = (
    "Sorry, I couldn't find any action to execute for your query. "
    "Please try again, e.g.: 'Create a fundraiser for 0.5 ETH for 0x...'."
)


def system_prompt() -> str:
    net = active_network()
    return (
        "You are Zeon, an AI fundraising assistant operating an onchain wallet. "
        f"Network: {net['name']} (chainId={net['chain_id']}). "
        "You help users create fundraisers, generate contribution QR codes, send ETH, and check "
        "balances, fundraiser status and contributors.\n"
        "Tool usage:\n"
        "• To CREATE a new fundraiser, call deploy_fundraiser_contract. The address the user gives "
        "is the beneficiary. Pass the user's full message as originalUserInput.\n"
        "• For a QR code for an EXISTING contract, call generate_contribution_qr_code.\n"
        "• For a QR code that calls an arbitrary contract function, call generate_contract_call_qr_code.\n"
        "• For a fundraiser without a contract, call create_wallet_fundraiser.\n"
        "• For transfers, call send_funds_to_address_or_ens.\n"
        "• For balances, status and contributors, call the matching check/get tool.\n"
        "Behavior:\n"
        "• If a required address or amount is missing, ask for it instead of guessing.\n"
        "• Relay tool output exactly as provided; do not summarize it or strip links.\n"
        "• Do not call tools that are not present in the tool list."
    )


def _parse_args(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        args = json.loads(raw or "{}")
    except (TypeError, ValueError):
        return {}
    return args if isinstance(args, dict) else {}


def process_query(
    query: str,
    llm: LLMClient,
    chain: ChainContext,
    history: Optional[List[Dict[str, str]]] = None,
) -> str:
    """
    Run the tool loop for one user message. Raises LLMError when the model
    cannot be reached.
    """
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt()}]
    messages.extend(history or [])
    messages.append({"role": "user", "content": query})

    for _ in range(MAX_TOOL_ROUNDS):
        model_msg = llm.chat(messages, tools=tools_schema)
        tool_calls = model_msg.get("tool_calls") or []
        if not tool_calls:
            return model_msg.get("content") or NO_ACTION_REPLY

        messages.append(model_msg)
        for tc in tool_calls:
            func_name = tc["function"]["name"]
            args = _parse_args(tc["function"].get("arguments"))
            logger.info(f"[agent] tool {func_name} args={args}")
            result = dispatch_tool(func_name, args, chain)

            spec = TOOLS_BY_NAME.get(func_name)
            if spec is not None and spec.direct:
                return result

            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": tc.get("id"),
                    "name": func_name,
                    "content": result,
                }
            )

    final = llm.chat(messages)
    return final.get("content") or NO_ACTION_REPLY


class ChatService:
    """
    One chat turn: balance gate, memory, agent, error templating.
    Shared by the HTTP API and the messaging bridge.
    """

    def __init__(
        self,
        llm: LLMClient,
        chain: ChainContext,
        memory: ChatMemoryStore,
        balance: Optional[BalanceManager] = None,
    ):
        self.llm = llm
        self.chain = chain
        self.memory = memory
        self.balance = balance

    def handle_message(self, message: str, session_id: str) -> str:
        logger.info(f"[chat] {session_id}: {message[:120]}")
        history = self.memory.recent(session_id)
        self.memory.append(session_id, "user", message)

        reply = self._gate(message)
        if reply is None:
            try:
                reply = process_query(message, self.llm, self.chain, history)
            except Exception as e:
                logger.error(f"Error processing message: {e}")
                reply = format_agent_error(str(e))

        # Keep QR images out of the model context
        self.memory.append(session_id, "assistant", parse_hybrid_payload(reply).text)
        return reply

    def _gate(self, message: str) -> Optional[str]:
        if self.balance is None or not is_transaction_message(message):
            return None
        ready, warning = self.balance.ensure_sufficient_balance()
        if ready:
            return None
        logger.warning(f"[chat] blocked transaction request: {warning}")
        return f"⚠️ {warning}"
