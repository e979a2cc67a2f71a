import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bookingdesk.api.errors import install_error_handlers
from bookingdesk.api.public import router as public_router
from bookingdesk.api.sessions import router as sessions_router
from bookingdesk.core.config import settings
from bookingdesk.wiring.dependencies import shutdown


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "appointment_id",
            "client_id",
            "event_id",
            "recipient",
            "template",
            "collection",
            "reason",
            "error",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let in-flight confirmation emails finish before the process exits
    shutdown()


app = FastAPI(title="Booking Desk", version="1.0.0", lifespan=lifespan)

install_error_handlers(app)
app.include_router(public_router, tags=["public"])
app.include_router(sessions_router, tags=["sessions"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bookingdesk.main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
