import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

from config import settings
from db import create_db_and_tables
from errors import DomainError
from providers import build_identity_provider, build_payment_processor
from routers import donations, payments, requests, reviews, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()
    app.state.identity_provider = build_identity_provider(settings)
    app.state.payment_processor = build_payment_processor(settings)
    logger.info(f"{settings.APP_NAME} started with {settings.IDENTITY_BACKEND} identity backend")


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed upstream: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "reason": exc.reason},
    )


LANDING_HTML = """<html>
  <head><title>PlateBridge</title></head>
  <body>
    <h1>PlateBridge</h1>
    <p>Together, we can reduce food waste and nourish more lives!</p>
  </body>
</html>"""


@app.get("/", response_class=HTMLResponse)
def read_root():
    return LANDING_HTML


@app.get("/ping")
def ping():
    return {"message": "Server is live"}


app.include_router(users.router, prefix="/users")
app.include_router(donations.router, prefix="/donations")
app.include_router(requests.router, prefix="/requests")
app.include_router(payments.router, prefix="/payments")
app.include_router(reviews.router, prefix="/reviews")
