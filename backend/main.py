import os

from fastapi.openapi.utils import get_openapi
from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()  # This reads .env into os.environ

from qtalent.main import app  # noqa: E402


def custom_openapi() -> dict:
    """Return OpenAPI schema with project metadata."""
    if app.openapi_schema:
        return app.openapi_schema
    app.openapi_schema = get_openapi(
        title="Talent Booking API",
        version="1.0.0",
        description="Bookings, gig claims, invoices and webhook-driven payment settlement.",
        routes=app.routes,
    )
    return app.openapi_schema


app.openapi = custom_openapi

if __name__ == "__main__":
    import uvicorn

    workers = int(os.getenv("UVICORN_WORKERS", "1"))
    keepalive = int(os.getenv("UVICORN_KEEPALIVE", "65"))
    uvicorn.run(
        "qtalent.main:app",
        host="0.0.0.0",
        port=8000,
        reload=workers == 1,
        workers=workers,
        timeout_keep_alive=keepalive,
    )
