"""Main entrypoint for the admin channel FastAPI application.

Exposes the health check and the Telegram webhook.
"""

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse

from admin_channel.services.telegram import handle_telegram_update
from admin_channel.utils.logger import generate_request_id
from admin_channel.utils.logger import log_error
from admin_channel.utils.logger import log_info


load_dotenv()

app = FastAPI(title="Admin Channel", version="0.1.0")


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    """Health check endpoint to verify that the service is running."""

    return {"status": "ok"}


@app.post("/webhook/telegram", status_code=status.HTTP_200_OK)
async def telegram_webhook(request: Request) -> dict:
    """Telegram webhook endpoint.

    Always answers 200 so Telegram does not redeliver an update we already
    failed on; failures are logged with the request id.
    """

    request_id = generate_request_id()
    request.state.request_id = request_id

    try:
        payload = await request.json()
    except ValueError:
        log_error("Telegram webhook body is not valid JSON", request_id=request_id)
        return {"status": "ok"}

    update_id = payload.get("update_id") if isinstance(payload, dict) else None
    log_info("Received Telegram update", request_id=request_id, update_id=update_id)

    try:
        await handle_telegram_update(payload, request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        log_error(
            "Error while handling Telegram update",
            request_id=request_id,
            error=repr(exc),
        )

    return {"status": "ok"}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for uncaught exceptions.

    Ensures the service returns a 500 JSON error rather than crashing, and
    logs the error together with any request_id associated with the request.
    """

    request_id = getattr(request.state, "request_id", None)
    log_error("Unhandled exception", request_id=request_id, error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )
