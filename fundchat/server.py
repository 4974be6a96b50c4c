import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from .config import (
    CORS_ORIGINS,
    CORS_ORIGIN_REGEX,
    MEMORY_SWEEP_INTERVAL_S,
    BALANCE_CHECK_INTERVAL_S,
    PORT,
    SERVER_REQUIRED_ENV,
    validate_environment,
)
from .context import AppContext
from .formatting import QRCodeError, generate_contribution_qr, make_qr_png
from .links import FundraiserParams, compose_fundraiser_url, generate_qr_code_url
from .log import setup_logging
from .payload import parse_hybrid_payload
from .registry import active_network
from .utils import is_valid_address, wei_from_eth, eth_from_wei, eip681_payment_uri, now_iso

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = ("message", "text", "content", "query")
SESSION_FIELDS = ("sessionId", "session_id", "userId", "user_id", "id")


def _first(body: Dict[str, Any], keys) -> Optional[str]:
    for k in keys:
        v = body.get(k)
        if isinstance(v, str) and v.strip():
            return v
    return None


async def _periodic(name: str, interval_s: float, fn) -> None:
    while True:
        await asyncio.sleep(interval_s)
        try:
            await run_in_threadpool(fn)
        except Exception as e:
            logger.error(f"[{name}] tick failed: {e}")


def create_app(ctx: Optional[AppContext] = None, start_background: bool = True) -> FastAPI:
    ctx = ctx or AppContext()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        tasks = []
        if start_background:
            await run_in_threadpool(ctx.init)
            tasks.append(asyncio.create_task(_periodic("memory", MEMORY_SWEEP_INTERVAL_S, ctx.memory.sweep)))
            if ctx.balance is not None:
                tasks.append(
                    asyncio.create_task(_periodic("balance", BALANCE_CHECK_INTERVAL_S, ctx.balance.monitor_tick))
                )
        yield
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        ctx.shutdown()

    app = FastAPI(title="fundchat", lifespan=lifespan)
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_origin_regex=CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
    )

    @app.options("/{path:path}", include_in_schema=False)
    def options_any(path: str):
        return Response(status_code=200)

    @app.get("/", response_class=PlainTextResponse)
    def root():
        if ctx.ready:
            return "✅ Zeon AI Agent is running and ready!"
        return "🟡 Zeon AI Agent is initializing... please wait."

    @app.get("/health")
    def health():
        if ctx.ready:
            return {"status": "healthy", "agent": "ready", "timestamp": now_iso()}
        return JSONResponse(
            {"status": "initializing", "agent": "not_ready", "timestamp": now_iso()},
            status_code=503,
        )

    @app.get("/metrics")
    def metrics():
        if not ctx.ready:
            return JSONResponse({"error": "Agent not ready"}, status_code=503)
        stats = ctx.memory.stats()
        body = {
            "activeSessions": stats["activeSessions"],
            "memorySize": stats["totalMessages"],
            "blockchainReady": ctx.chain.ready,
            "deploymentsEnabled": ctx.chain.factory is not None,
            "timestamp": now_iso(),
        }
        if ctx.balance is not None:
            body["balance"] = ctx.balance.status()
        return body

    @app.get("/cors-test")
    def cors_test(request: Request):
        return {
            "message": "✅ CORS is working correctly!",
            "origin": request.headers.get("origin") or "no-origin",
            "timestamp": now_iso(),
        }

    async def handle_chat(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return JSONResponse(
                {"error": "Request body must be a JSON object", "received": body},
                status_code=400,
            )

        message = _first(body, MESSAGE_FIELDS)
        if not message:
            return JSONResponse(
                {
                    "error": "message field is required (also accepts: text, content, query)",
                    "received": body,
                },
                status_code=400,
            )
        session_id = _first(body, SESSION_FIELDS) or _first(body, ("walletAddress",))
        if not session_id or session_id == "default-session":
            session_id = f"session-{int(time.time() * 1000)}-{secrets.token_hex(5)}"
            logger.info(f"Auto-generated sessionId: {session_id}")

        if not ctx.ready:
            return JSONResponse(
                {"error": "Service Unavailable: Agent is initializing. Please try again in a moment."},
                status_code=503,
            )

        try:
            start = time.monotonic()
            response = await run_in_threadpool(ctx.service.handle_message, message, session_id)
            processing_ms = int((time.monotonic() - start) * 1000)
        except Exception:
            logger.exception("Error handling API message")
            return JSONResponse({"error": "Failed to process message"}, status_code=500)

        logger.info(f"Processing time: {processing_ms}ms")
        return {
            "response": response,
            "payload": parse_hybrid_payload(response).to_wire(),
            "metadata": {
                "processingTime": processing_ms,
                "sessionId": session_id,
                "timestamp": now_iso(),
            },
        }

    app.add_api_route("/api/chat", handle_chat, methods=["POST"])
    app.add_api_route("/api/message", handle_chat, methods=["POST"])

    @app.get("/api/qr-code")
    def qr_code_png(walletAddress: str = "", amount: str = "", fundraiserName: str = "Fundraiser"):
        if not walletAddress or not amount:
            return JSONResponse({"error": "walletAddress and amount are required"}, status_code=400)
        if not is_valid_address(walletAddress):
            return JSONResponse({"error": "Invalid wallet address format"}, status_code=400)
        try:
            wei = wei_from_eth(amount)
        except ValueError:
            return JSONResponse({"error": "Invalid amount"}, status_code=400)
        try:
            png, _ = make_qr_png(eip681_payment_uri(walletAddress, wei, active_network()["chain_id"]))
        except Exception:
            logger.exception(f"Error generating QR PNG for {fundraiserName}")
            return JSONResponse({"error": "Failed to generate QR code"}, status_code=500)
        return Response(content=png, media_type="image/png", headers={"Cache-Control": "public, max-age=300"})

    @app.post("/api/qr-code")
    async def qr_code_json(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        body = body if isinstance(body, dict) else {}
        address = body.get("contractAddress") or body.get("walletAddress")
        amount = body.get("amountInEth") or body.get("amount")
        name = body.get("fundraiserName")
        if not address or not amount or not name:
            return JSONResponse(
                {"error": "contractAddress, amountInEth, and fundraiserName are required"},
                status_code=400,
            )
        if not is_valid_address(address):
            return JSONResponse({"error": "Invalid contract address format"}, status_code=400)
        try:
            qr = await run_in_threadpool(generate_contribution_qr, address, str(amount), name)
        except QRCodeError:
            logger.exception("Error generating QR code")
            return JSONResponse({"error": "Failed to generate QR code"}, status_code=500)
        if isinstance(qr, str):
            return JSONResponse({"error": qr}, status_code=400)
        return {
            "message": qr["message"],
            "qrCode": qr["qrCode"],
            "metadata": {
                "contractAddress": address,
                "amountInEth": str(amount),
                "fundraiserName": name,
                "timestamp": now_iso(),
            },
        }

    @app.get("/api/fundraiser/{address}")
    def fundraiser_status(address: str, name: str = "Fundraiser", goal: str = "1", description: Optional[str] = None):
        if not is_valid_address(address):
            return JSONResponse({"error": "Invalid wallet address format"}, status_code=400)
        try:
            goal_dec = Decimal(goal)
            if goal_dec <= 0:
                raise InvalidOperation
        except InvalidOperation:
            return JSONResponse({"error": "goal must be a positive ETH amount"}, status_code=400)
        try:
            current = eth_from_wei(ctx.chain.get_balance(address))
        except Exception as e:
            logger.warning(f"Balance unavailable for {address}: {e}")
            current = "0"
        progress = float(min(Decimal(100), Decimal(current) * 100 / goal_dec))
        net = active_network()
        return {
            "walletAddress": address,
            "fundraiserName": name,
            "description": description,
            "goalAmount": goal,
            "currentAmount": current,
            "progress": round(progress, 2),
            "contributors": [],
            "shareUrl": compose_fundraiser_url(
                FundraiserParams(address, goal, name, description, current)
            ),
            "qrCodeUrl": generate_qr_code_url(address, goal, name),
            "network": {"id": net["id"], "name": net["name"], "chainId": net["chain_id"]},
        }

    return app


def main() -> None:
    import uvicorn

    setup_logging()
    validate_environment(SERVER_REQUIRED_ENV)
    logger.info(f"Starting API server on port {PORT} ({active_network()['name']})")
    uvicorn.run(create_app(), host="0.0.0.0", port=PORT)


if __name__ == "__main__":
    main()
