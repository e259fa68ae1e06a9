from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db, init_db
from app.errors import ChatBridgeError
from app.logging_config import get_logger, setup_logging
from app.models import Conversation, Customer, Integration, Message
from app.routers import smooch, whatsapp
from app.services.alert_service import alert_warning
from app.services.inbox_client import InboxClient
from app.services.platforms import build_registry
from app.services.smooch_client import ClientState, SmoochClient
from app.services.whatsapp_client import WhatsAppClient

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="ChatBridge API",
    description="Relay between messaging platforms and the operator inbox",
    version="0.1.0",
    debug=settings.debug,
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(smooch.router)
app.include_router(whatsapp.router)


@app.exception_handler(ChatBridgeError)
async def chatbridge_error_handler(request: Request, exc: ChatBridgeError) -> JSONResponse:
    logger.warning(
        f"{request.method} {request.url.path} failed: {exc.message}",
        extra={"context": {"code": exc.code, "status_code": exc.status_code}},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def start_clients() -> None:
    if settings.auto_create_tables:
        init_db()

    smooch_client = SmoochClient(settings)
    if await smooch_client.initialize() == ClientState.DEGRADED:
        await alert_warning("Smooch client degraded, aggregator routes disabled", {"source": "startup"})

    whatsapp_client = WhatsAppClient(settings.whatsapp_api_url, timeout=settings.http_timeout_seconds)
    inbox_client = InboxClient(settings.inbox_api_url, timeout=settings.http_timeout_seconds)
    if not inbox_client.enabled:
        logger.warning("INBOX_API_URL not set, customers and conversations are kept local only")

    app.state.smooch_client = smooch_client
    app.state.whatsapp_client = whatsapp_client
    app.state.inbox_client = inbox_client
    app.state.registry = build_registry(smooch_client, whatsapp_client)
    logger.info("Platform registry ready", extra={"context": {"kinds": list(app.state.registry.kinds)}})


@app.on_event("shutdown")
async def stop_clients() -> None:
    for name in ("smooch_client", "whatsapp_client", "inbox_client"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.close()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    return {
        "status": "ok",
        "integrations": db.query(Integration).count(),
        "customers": db.query(Customer).count(),
        "conversations": db.query(Conversation).count(),
        "messages": db.query(Message).count(),
    }
