# storefront/main.py
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .log import configure_logging
from .routes import cart, products, shipping, payments, emails
from .settings import settings

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Heirbloom Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Every error leaves as {"error": "..."}
@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    # first path element after "body" names the offending field
    field = next((str(p) for p in first.get("loc", ()) if p != "body"), "")
    message = f"Invalid {field}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(cart.router)
app.include_router(products.router)
app.include_router(shipping.router)
app.include_router(payments.router)
app.include_router(emails.router)

@app.get("/")
def root():
    return {"message": "Heirbloom storefront API is running"}

@app.on_event("startup")
def _startup_report():
    logger.info(
        "Storefront API started",
        stripe_configured=bool(settings.stripe_secret_key),
        carrier_configured=settings.carrier_configured,
        mailer="resend" if settings.resend_api_key else "outbox",
        dispatch_ledger=settings.dispatch_ledger,
    )
