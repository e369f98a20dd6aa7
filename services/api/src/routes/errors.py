from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bidding import AuctionError, BidRejected
from utils import log

logger = log.get_logger(__name__)


def error_body(error: AuctionError) -> dict:
    body = {"detail": error.message, "error": error.kind}
    if isinstance(error, BidRejected):
        body["reason"] = error.reason.value
    return body


async def auction_error_handler(request: Request, exc: AuctionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuctionError, auction_error_handler)
