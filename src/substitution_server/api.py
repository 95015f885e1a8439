import logging

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from substitution_server.config import get_settings
from substitution_server.dto.models import Schoolday
from substitution_server.store import SubstitutionStore

logger = logging.getLogger(__name__)


def get_store(request: Request) -> SubstitutionStore:
    return request.app.state.store


def create_app(store: SubstitutionStore) -> FastAPI:
    settings = get_settings()

    app = FastAPI(title="substitution-server")
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/healthz", include_in_schema=False)
    def healthcheck():
        return {"status": "ok"}

    @app.get("/{schoolday}")
    def get_schoolday_pdf_json(schoolday: Schoolday, store: SubstitutionStore = Depends(get_store)):
        """Latest schedule of the day, or 204 with a retry hint while none is cached yet."""
        body = store.get_json(schoolday)
        if body is None:
            logger.debug(f"{schoolday}: no json yet")
            return Response(status_code=204, headers={"Retry-After": str(settings.RETRY_AFTER_SECONDS)})

        return Response(content=body, media_type="application/json")

    return app
