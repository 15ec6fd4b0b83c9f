from fastapi import FastAPI

from app.api.routers.calls import router as calls_router
from app.api.routers.debug import router as debug_router
from app.api.routers.medications import router as medications_router
from app.api.routers.scheduler import router as scheduler_router
from app.api.routers.users import router as users_router


def create_app() -> FastAPI:
    app = FastAPI(title="Medication Call Scheduler API")

    app.include_router(scheduler_router)
    app.include_router(users_router)
    app.include_router(medications_router)
    app.include_router(calls_router)
    app.include_router(debug_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
