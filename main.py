# main.py
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from config.logging_config import configure_logging
from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.portfolio_routes import router as portfolio_router

configure_logging()

app = FastAPI(title="Crypto Portfolio API")

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.include_router(portfolio_router, prefix="/api/portfolio")


@app.get("/")
def root():
    return {"detail": "API is running..."}


# db startup
from database import Base, engine  # noqa: E402
import models  # noqa: E402, F401  registers tables on Base.metadata

Base.metadata.create_all(bind=engine)
