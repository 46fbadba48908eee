"""
HTTP service for SecureVault.

Exposes deposits, authorized withdrawals and read queries. The caller
identity is taken from the X-Caller header; the network identifier comes
from configuration, never from the request.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from . import config
from .context import ExecutionContext
from .errors import ErrorCode, VaultError
from .events import EVENT_TYPES, EventLog
from .logging_config import configure_logging, set_request_id
from .models import DepositRequest, WithdrawRequest
from .registry import AuthorizationRegistry
from .stores import (
    InMemoryConsumedStore,
    InMemoryLedgerStore,
    SqliteConsumedStore,
    SqliteDatabase,
    SqliteLedgerStore,
)
from .transfer import InMemoryTransferBackend, TransferBackend
from .vault import ValueVault

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.ALREADY_INITIALIZED: 409,
    ErrorCode.NOT_INITIALIZED: 503,
    ErrorCode.INVALID_AUTHORITY: 400,
    ErrorCode.INVALID_REGISTRY: 400,
    ErrorCode.ALREADY_CONSUMED: 403,
    ErrorCode.INVALID_SIGNATURE: 403,
    ErrorCode.INSUFFICIENT_BALANCE: 422,
    ErrorCode.ZERO_AMOUNT: 400,
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.INVALID_RECIPIENT: 400,
    ErrorCode.INVALID_DEPOSITOR: 400,
    ErrorCode.TRANSFER_FAILED: 502,
}


@dataclass
class Service:
    """The wired components behind one app instance."""
    registry: AuthorizationRegistry
    vault: ValueVault
    events: EventLog
    network_id: int


def build_service(
    store_backend: str = config.STORE_BACKEND,
    db_path: str = config.DB_PATH,
    signer_pubkey: str = config.SIGNER_PUBKEY,
    network_id: int = config.NETWORK_ID,
    transfer_backend: Optional[TransferBackend] = None
) -> Service:
    """
    Wire a registry and vault from configuration.

    With the sqlite backend, state recorded by an earlier process is reused:
    the registry keeps its signer and the vault re-attaches to the registry.
    """
    events = EventLog()
    if store_backend == "sqlite":
        db = SqliteDatabase(db_path)
        consumed_store = SqliteConsumedStore(db, namespace=config.REGISTRY_ID)
        ledger_store = SqliteLedgerStore(db, namespace=config.VAULT_ID)
    else:
        consumed_store = InMemoryConsumedStore()
        ledger_store = InMemoryLedgerStore()

    registry = AuthorizationRegistry(config.REGISTRY_ID, store=consumed_store, events=events)
    if not registry.initialized and signer_pubkey:
        registry.initialize(signer_pubkey)

    vault = ValueVault(
        config.VAULT_ID,
        transfer_backend=transfer_backend or InMemoryTransferBackend(),
        store=ledger_store,
        events=events,
    )
    if vault.initialized:
        vault.attach(registry)
    else:
        vault.initialize(registry)

    return Service(registry=registry, vault=vault, events=events, network_id=network_id)


def create_app(service: Optional[Service] = None) -> FastAPI:
    service = service or build_service()
    app = FastAPI(title="SecureVault")
    app.state.service = service

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(VaultError)
    async def _vault_error(request: Request, exc: VaultError):
        return JSONResponse(
            status_code=STATUS_BY_CODE.get(exc.code, 400),
            content={"detail": exc.code.value, "error": exc.to_dict()},
        )

    base_context = ExecutionContext(network_id=service.network_id)

    def _context(caller: Optional[str]) -> ExecutionContext:
        return base_context.with_caller(caller)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "registry_initialized": service.registry.initialized,
            "vault_initialized": service.vault.initialized,
            "network_id": service.network_id,
        }

    @app.post("/deposit")
    def deposit(req: DepositRequest, x_caller: Optional[str] = Header(None)):
        total = service.vault.deposit_from(_context(x_caller), req.amount)
        return {"depositor": x_caller, "amount": req.amount, "total_held": total}

    @app.post("/withdraw")
    def withdraw(req: WithdrawRequest, x_caller: Optional[str] = Header(None)):
        receipt = service.vault.withdraw(
            req.recipient, req.amount, req.nonce, req.signature, _context(x_caller)
        )
        return receipt.to_dict()

    @app.get("/balance")
    def balance():
        return {"vault": service.vault.identity, "total_held": service.vault.get_balance()}

    @app.get("/balance/{identity}")
    def user_balance(identity: str):
        return {"identity": identity, "balance": service.vault.get_user_balance(identity)}

    @app.get("/authorizations/{digest}")
    def authorization_status(digest: str):
        try:
            consumed = service.registry.is_consumed(digest)
        except ValueError:
            raise HTTPException(400, "INVALID_DIGEST")
        return {"digest": digest, "consumed": consumed}

    @app.get("/events")
    def events(since: Optional[int] = None, event_type: Optional[str] = Query(None, alias="type")):
        cls = None
        if event_type:
            cls = EVENT_TYPES.get(event_type)
            if cls is None:
                raise HTTPException(400, "INVALID_EVENT_TYPE")
        return [r.to_dict() for r in service.events.query(event_type=cls, since_sequence=since)]

    return app


def app_from_env() -> FastAPI:
    """
    Build the app from SECUREVAULT_* environment variables.

    Serve with any ASGI server, e.g. ``uvicorn --factory securevault.api:app_from_env``.
    """
    level = "DEBUG" if config.is_debug() else config.LOG_LEVEL
    configure_logging(level, json_format=config.LOG_JSON, log_file=config.LOG_FILE)
    failed = [name for name, ok in config.validate_config().items() if not ok]
    if failed:
        logger.warning("Configuration checks failed: %s", ", ".join(failed))
    if config.is_production() and config.STORE_BACKEND != "sqlite":
        logger.warning("Running in prod with the in-memory store; state is lost on restart")
    return create_app(build_service())
