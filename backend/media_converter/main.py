"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from media_converter.api.routes import router, root_router
from media_converter.config import CORS_ORIGINS, STORAGE_BACKEND, logger as config_logger

logging.getLogger("uvicorn").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info("Media converter API started (storage=%s)", STORAGE_BACKEND)
    yield
    config_logger.info("Media converter API shutting down")


app = FastAPI(
    title="Media Converter API",
    description="Convert remote images and animations to size-bounded PNG, JPEG, MP4 or KTX2 artifacts.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=bool(CORS_ORIGINS),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Cache-Control", "Content-Type", "Origin", "Accept", "User-Agent"],
    max_age=86400,
)
app.include_router(router)
app.include_router(root_router)


if __name__ == "__main__":
    import uvicorn
    from media_converter.config import HOST, PORT
    uvicorn.run("media_converter.main:app", host=HOST, port=PORT, reload=True)
