import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import admin, billing, prices, webhooks
from app.core.config import get_settings
from app.core.errors import PriceEditorError
from app.db.base import Base
from app.db.session import engine

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup() -> None:
    Base.metadata.create_all(bind=engine)


@app.exception_handler(RequestValidationError)
def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"code": "validation_error", "message": "Invalid request", "details": exc.errors()})


@app.exception_handler(PriceEditorError)
def price_editor_exception_handler(_: Request, exc: PriceEditorError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_api_error().to_dict()})


app.include_router(prices.router)
app.include_router(billing.router)
app.include_router(billing.confirm_router)
app.include_router(webhooks.router)
app.include_router(admin.router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
