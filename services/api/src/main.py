from contextlib import asynccontextmanager
from pathlib import Path

import conf
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routes.base import router
from routes.errors import install_error_handlers
from utils import log

from bidding import AuctionService, Ledger, UpdateBroadcaster

log.init(conf.get_log_level())
logger = log.get_logger(__name__)


async def _build_ledger() -> Ledger:
    backend = conf.get_ledger_backend()
    if backend == "memory":
        from bidding.memory_ledger import InMemoryLedger

        logger.warning("LEDGER_BACKEND=memory; auctions and bids are not durable")
        return InMemoryLedger()

    from bidding.couchbase_ledger import CouchbaseLedger
    from clients.couchbase import check_connection

    logger.info("Verifying Couchbase connection...")
    await check_connection()
    logger.info("Couchbase connection verified.")
    return CouchbaseLedger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    ledger = await _build_ledger()

    # Initialize auth client if enabled
    if conf.get_use_auth():
        from utils import auth

        app.state.auth_client = auth.AuthClient(conf.get_auth_config())
    else:
        logger.warning("Authentication is disabled (set USE_AUTH to enable); trusting X-User-* headers")

    stream_conf = conf.get_stream_conf()
    service = AuctionService(
        ledger,
        broadcaster=UpdateBroadcaster(queue_size=stream_conf.queue_size),
        max_append_retries=conf.get_bid_append_max_retries(),
        sweep_seconds=conf.get_scheduler_conf().sweep_seconds,
    )
    # Starts the deadline scheduler and closes auctions that expired while we were down
    await service.startup()
    app.state.auction_service = service

    yield

    await service.shutdown()
    app.state.auction_service = None


app = FastAPI(
    title="Reverse Auction API",
    version="0.1.0",
    docs_url="/docs",
    lifespan=lifespan,
    debug=conf.get_http_expose_errors(),
)

app.include_router(router)
install_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not conf.validate():
    raise ValueError("Invalid configuration.")

http_conf = conf.get_http_conf()
logger.info(f"Starting API on port {http_conf.port}")

logger.info("--- Registered Routes ---")
for route in app.routes:
    methods_set = getattr(route, "methods", None)
    methods = ", ".join(methods_set) if methods_set else "Any"
    path = getattr(route, "path", "<unknown>")
    logger.info(f"{path} [{methods}]")
logger.info("-------------------------")

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=http_conf.host,
        port=http_conf.port,
        reload=http_conf.autoreload,
        log_level="info",
        reload_dirs=[str(Path(__file__).parent), "/models", "/clients"],
        log_config=None,
    )
