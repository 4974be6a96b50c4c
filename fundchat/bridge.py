"""
Messaging bridge: the same chat service behind a uagents chat-protocol agent.

Each sender address is its own session. QR replies are uploaded to Agentverse
storage and delivered as a resource; when the upload fails the user gets the
text and payment details instead.
"""
import asyncio
import base64
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from uagents import Agent, Context, Protocol
from uagents_core.contrib.protocols.chat import (
    chat_protocol_spec,
    ChatMessage,
    ChatAcknowledgement,
    TextContent,
    StartSessionContent,
    ResourceContent,
    Resource,
)

from .config import (
    AGENT_SEED,
    AGENT_PORT,
    BRIDGE_REQUIRED_ENV,
    MEMORY_SWEEP_INTERVAL_S,
    BALANCE_CHECK_INTERVAL_S,
    validate_environment,
)
from .context import AppContext
from .log import setup_logging
from .payload import parse_hybrid_payload
from .registry import active_network
from .render import extract_wallet_address
from .storage import upload_png_to_storage


def _text_msg(text: str) -> ChatMessage:
    return ChatMessage(
        timestamp=datetime.now(timezone.utc),
        msg_id=uuid4(),
        content=[TextContent(type="text", text=text)],
    )


def _resource_msg(asset_id: str, uri: str, mime: str) -> ChatMessage:
    return ChatMessage(
        timestamp=datetime.now(timezone.utc),
        msg_id=uuid4(),
        content=[
            ResourceContent(
                type="resource",
                resource_id=asset_id,
                resource=Resource(uri=uri, metadata={"mime_type": mime, "role": "qr-code"}),
            )
        ],
    )


def _png_from_data_url(data_url: str) -> Optional[bytes]:
    if not data_url.startswith("data:image/png;base64,"):
        return None
    try:
        return base64.b64decode(data_url.split(",", 1)[1])
    except ValueError:
        return None


async def deliver_reply(ctx: Context, sender: str, reply: str) -> None:
    parsed = parse_hybrid_payload(reply)
    if not parsed.qr_code:
        await ctx.send(sender, _text_msg(reply))
        return

    await ctx.send(sender, _text_msg(parsed.text))
    png = _png_from_data_url(parsed.qr_code)
    if png:
        label = parsed.transaction_hash or extract_wallet_address(parsed.qr_message or parsed.text)
        asset_id, asset_uri, err = upload_png_to_storage(ctx, sender, png, label)
        if asset_id and asset_uri:
            await ctx.send(sender, _resource_msg(asset_id, asset_uri, "image/png"))
            return
        ctx.logger.error(f"Upload to storage failed: {err}")
    fallback = "I couldn't attach the QR image. Here are the payment details instead:"
    if parsed.qr_message and parsed.qr_message != parsed.text:
        fallback += "\n\n" + parsed.qr_message
    await ctx.send(sender, _text_msg(fallback))


def build_agent(app_ctx: AppContext, seed: Optional[str] = None, port: int = AGENT_PORT) -> Agent:
    agent = Agent(name="zeon-fundraiser-agent", seed=seed or AGENT_SEED, port=port, mailbox=True)
    chat_proto = Protocol(spec=chat_protocol_spec)

    @agent.on_event("startup")
    async def _startup(ctx: Context):
        net = active_network()
        ctx.logger.info(f"🚀 Starting bridge on {net['name']} | chainId={net['chain_id']}")
        await asyncio.to_thread(app_ctx.init)
        if not app_ctx.ready:
            ctx.logger.error(f"Agent not ready: {app_ctx.init_error}")
        else:
            ctx.logger.info(f"Agent address: {agent.address} | wallet: {app_ctx.chain.wallet.address}")

    @agent.on_event("shutdown")
    async def _shutdown(ctx: Context):
        app_ctx.shutdown()

    @agent.on_interval(period=float(MEMORY_SWEEP_INTERVAL_S))
    async def _sweep(ctx: Context):
        app_ctx.memory.sweep()

    @agent.on_interval(period=float(BALANCE_CHECK_INTERVAL_S))
    async def _monitor(ctx: Context):
        if app_ctx.balance is not None:
            await asyncio.to_thread(app_ctx.balance.monitor_tick)

    @chat_proto.on_message(model=ChatMessage)
    async def handle_chat_message(ctx: Context, sender: str, msg: ChatMessage):
        if sender == agent.address:
            return
        try:
            ack = ChatAcknowledgement(
                timestamp=datetime.now(timezone.utc), acknowledged_msg_id=msg.msg_id
            )
            await ctx.send(sender, ack)

            for item in msg.content:
                if isinstance(item, StartSessionContent):
                    ctx.logger.info(f"Got a start session message from {sender}")
                    continue
                elif isinstance(item, TextContent):
                    ctx.logger.info(f"Got a message from {sender}: {item.text}")
                    if not app_ctx.ready:
                        await ctx.send(
                            sender,
                            _text_msg("🟡 Agent is initializing. Please try again in a moment."),
                        )
                        continue
                    reply = await asyncio.to_thread(
                        app_ctx.service.handle_message, item.text, sender
                    )
                    await deliver_reply(ctx, sender, reply)
                else:
                    ctx.logger.info(f"Got unexpected content from {sender}")
        except Exception as e:
            ctx.logger.error(f"Error handling chat message: {e}")
            await ctx.send(sender, _text_msg(f"An error occurred: {e}"))

    @chat_proto.on_message(model=ChatAcknowledgement)
    async def handle_chat_acknowledgement(ctx: Context, sender: str, msg: ChatAcknowledgement):
        ctx.logger.info(
            f"Received acknowledgement from {sender} for message {msg.acknowledged_msg_id}"
        )
        if msg.metadata:
            ctx.logger.info(f"Metadata: {msg.metadata}")

    agent.include(chat_proto)
    return agent


def main() -> None:
    setup_logging()
    validate_environment(BRIDGE_REQUIRED_ENV)
    build_agent(AppContext()).run()


if __name__ == "__main__":
    main()
