import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from roster.core.config import get_cors_origins
from roster.core.logging_config import configure_logging
from roster.database.db import Base, engine
import roster.models.attendees  # noqa: F401
import roster.models.events  # noqa: F401
from roster.routes import attendees as attendee_routes
from roster.routes import events as event_routes
from roster.routes import reports as report_routes
from roster.services.errors import ErrorCode, InvalidInputError, RegistrationError

configure_logging()
logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.DUPLICATE_EMAIL: 400,
    ErrorCode.CAPACITY_EXCEEDED: 400,
    ErrorCode.CONFLICT: 409,
    ErrorCode.TIMEOUT: 504,
    ErrorCode.STORE_UNAVAILABLE: 503,
}

app = FastAPI(title="Event Roster")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create all tables (in production, use migrations such as Alembic)
Base.metadata.create_all(bind=engine)


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError):
    status_code = STATUS_BY_CODE[exc.code]
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    error = InvalidInputError(details)
    return JSONResponse(status_code=400, content=error.to_dict())


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


# Include the routers
app.include_router(event_routes.router)
app.include_router(attendee_routes.router)
app.include_router(report_routes.router)
