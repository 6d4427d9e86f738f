import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Comment Sentiment Analysis")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# routers
from api.oracle import router as oracle_router
from api.sessions import router as sessions_router

app.include_router(oracle_router)
app.include_router(sessions_router)


@app.on_event("startup")
def on_startup() -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
