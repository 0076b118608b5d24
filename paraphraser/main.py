import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from paraphraser.api import health, paraphrase
from paraphraser.core.config import settings, validate_config
from paraphraser.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from paraphraser.core.logging import configure_logging
from paraphraser.core.middleware.request_id import RequestIdMiddleware
from paraphraser.features.analytics.tasks import background_tasks
from paraphraser.features.paraphrase.model_client import close_model_clients

configure_logging(settings.ENV, settings.LOG_LEVEL)
validate_config(strict=settings.CONFIG_STRICT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("paraphraser")
    logger.info("Starting paraphraser backend...")
    try:
        yield
    finally:
        if background_tasks.pending:
            logger.info(f"Waiting for {background_tasks.pending} analytics task(s)...")
        finished = await background_tasks.wait_idle(timeout=settings.BACKGROUND_DRAIN_TIMEOUT_SECONDS)
        if not finished:
            logger.warning(f"Cancelling {background_tasks.pending} unfinished analytics task(s)")
            background_tasks.cancel_all()
        await close_model_clients()
        logger.info("Stopping paraphraser backend...")


app = FastAPI(title="Paraphraser", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.router)
app.include_router(paraphrase.router)


def run() -> None:
    import uvicorn

    uvicorn.run("paraphraser.main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
