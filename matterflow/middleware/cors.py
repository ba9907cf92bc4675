# matterflow/middleware/cors.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from matterflow.core.config import settings


def setup_cors_middleware(app: FastAPI) -> None:
    """
    Configure CORS for the case management front end
    """
    allowed_origins = settings.cors_origins_list

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "X-Actor-ID",
            "X-Request-ID",
            "X-Trace-ID"
        ],
        expose_headers=[
            "X-Request-ID",
            "X-Trace-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining"
        ],
        max_age=600,
    )

    logger.info(f"CORS configured for {len(allowed_origins)} origins")
