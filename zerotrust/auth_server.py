"""
Credential-issuing auth app.

Routes:
    GET  /health
    POST /login                        login proof -> credential
    GET  /users/{username}/public-key  current registered key
"""

from typing import Any

from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from .errors import Layer
from .ledger import Ledger
from .login import LoginService
from .models import LoginRequest, parse_model
from .web import error_body, register_error_handlers


def create_auth_app(login_service: LoginService, ledger: Ledger) -> FastAPI:
    app = FastAPI(title="zerotrust auth server")
    register_error_handlers(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "auth-server"}

    @app.post("/login")
    def login(body: Any = Body(None)):
        req = parse_model(LoginRequest, body, Layer.LOGIN)
        result = login_service.login(req.username, req.timestamp, req.signature)
        return result.to_dict()

    @app.get("/users/{username}/public-key")
    def public_key(username: str):
        identity = ledger.lookup_identity(username)
        if identity is None:
            return JSONResponse(status_code=404, content=error_body("User not found"))
        return {
            "success": True,
            "publicKey": identity.public_key,
            "keyType": identity.key_type,
        }

    return app
