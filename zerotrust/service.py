"""
Backend service app.

Every business route runs the full verification pipeline first; handlers
only ever see a verified identity and the unpadded logical payload.

Routes:
    GET  /health
    POST /internal/balance
    POST /internal/transfer
    POST /internal/history
    POST /internal/test                  gateway layer only
    POST /admin/clear-cache/{username}
"""

import logging
from typing import Any

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from .ledger import InMemoryLedger, LedgerError
from .logging_config import get_request_id
from .models import TransferData, parse_model
from .pipeline import VerificationDecision, VerificationPipeline
from .resolver import PublicKeyResolver
from .web import error_body, register_error_handlers

logger = logging.getLogger(__name__)

VERIFIED_LAYERS = {
    "gateway_hmac": "verified",
    "token": "verified",
    "user_signature": "verified",
}


def create_service_app(
    pipeline: VerificationPipeline,
    ledger: InMemoryLedger,
    resolver: PublicKeyResolver,
) -> FastAPI:
    """Build the backend app around a configured pipeline."""
    app = FastAPI(title="zerotrust backend service")
    register_error_handlers(app)

    def _verified(body: Any) -> VerificationDecision:
        decision = pipeline.verify(body, request_id=get_request_id() or None)
        if not decision.accepted:
            raise decision.error
        return decision

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": "app-service",
            "key_cache": resolver.stats(),
        }

    @app.post("/internal/balance")
    def balance(body: Any = Body(None)):
        decision = _verified(body)
        username = decision.identity.username
        try:
            amount = ledger.balance(username)
        except LedgerError as e:
            logger.warning(f"Balance lookup failed for {username}: {e}")
            return JSONResponse(status_code=404, content=error_body("Account not found"))
        return {
            "success": True,
            "data": {
                "username": username,
                "balance": amount,
                "currency": ledger.currency,
            },
            "verification_layers": VERIFIED_LAYERS,
        }

    @app.post("/internal/transfer")
    def transfer(body: Any = Body(None)):
        decision = _verified(body)
        sender = decision.identity.username
        data = parse_model(TransferData, decision.payload)

        if not ledger.is_sufficient_balance(sender, data.amount):
            return JSONResponse(
                status_code=400,
                content=error_body("Insufficient balance", current_balance=ledger.balance(sender)),
            )
        try:
            tx = ledger.apply_transfer(sender, data.receiver, data.amount)
        except LedgerError as e:
            return JSONResponse(status_code=400, content=error_body(str(e)))

        logger.info(f"Transfer completed: {sender} -> {data.receiver}: {data.amount} {ledger.currency}")
        return {
            "success": True,
            "message": "Transfer completed successfully",
            "data": {
                "transaction": tx.to_dict(),
                "balance": ledger.balance(sender),
            },
            "verification_layers": VERIFIED_LAYERS,
        }

    @app.post("/internal/history")
    def history(body: Any = Body(None)):
        decision = _verified(body)
        transactions = [t.to_dict() for t in ledger.history(decision.identity.username)]
        return {
            "success": True,
            "data": {
                "transactions": transactions,
                "count": len(transactions),
            },
            "verification_layers": VERIFIED_LAYERS,
        }

    @app.post("/internal/test")
    def test(body: Any = Body(None)):
        decision = pipeline.verify_gateway_only(body, request_id=get_request_id() or None)
        if not decision.accepted:
            raise decision.error
        return {
            "success": True,
            "message": "Request received by App Service",
            "gateway_metadata": body["gateway_envelope"].get("gateway_metadata"),
            "passed_layers": decision.passed_layers,
        }

    @app.post("/admin/clear-cache/{username}")
    def clear_cache(username: str):
        removed = resolver.invalidate(username)
        return {
            "success": True,
            "message": f"Cache cleared for {username}" if removed else f"No cache entry for {username}",
        }

    return app
