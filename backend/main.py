import logging

from fastapi import FastAPI

from core.config import apply_cors
from core.settings import get_settings
from routers.process_router import router as process_router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="BPMN.GEN")
    apply_cors(app)

    # Routes
    app.include_router(process_router)

    return app


app = create_app()
