from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .config import get_settings
from .routers import damage_reports, reservations, rooms
from .utils.request_context import REQUEST_ID_HEADER, configure_logging, generate_request_id, set_request_id

configure_logging(get_settings().log_level)

app = FastAPI(title="Room Booking API")


async def request_id_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(rooms.router)
app.include_router(reservations.router)
app.include_router(damage_reports.router)
