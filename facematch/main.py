import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .api.routes import body_too_large_response, router
from .config import get_settings
from .core.face_detection import ModelLoadError, get_engine, resolve_models_dir
from .utils.http import close_shared_http_client

load_dotenv()

logger = logging.getLogger(__name__)


async def _warm_up_models():
    try:
        await get_engine().ensure_ready()
    except ModelLoadError as e:
        # Requests retry the load and report the failure themselves
        logger.error(f"Failed to load face recognition models: {str(e)}")


def _models_dir() -> Optional[Path]:
    try:
        return resolve_models_dir()
    except ImportError as e:
        logger.error(f"Model weights are not installed, /models is not served: {str(e)}")
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    warm_up = None
    if get_settings().preload_models:
        warm_up = asyncio.create_task(_warm_up_models())
    yield
    if warm_up is not None and not warm_up.done():
        warm_up.cancel()
    await close_shared_http_client()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title="Face Match API", version="1.0.0", lifespan=lifespan)

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_body_size:
            return body_too_large_response(settings.max_body_size)
        return await call_next(request)

    app.include_router(router)

    # Serve the model weights
    models_dir = _models_dir()
    if models_dir is not None:
        app.mount("/models", StaticFiles(directory=models_dir, check_dir=False), name="models")

    return app


app = create_app()


def main():
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn

    logger.info(f"Server running on port {settings.port}")
    logger.info(f"Models directory: {_models_dir()}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
