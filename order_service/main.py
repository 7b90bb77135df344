from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from order_service.api.v1.routes_orders import router as orders_router
from order_service.core.config import settings
from order_service.core.errors import ServiceError
from order_service.core.logging import configure_logging
from order_service.db.base import create_all, engine

configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_CREATE_ALL:
        await create_all()
    yield
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)

app.include_router(orders_router)


@app.middleware("http")
async def clear_log_context(request: Request, call_next):
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(path=request.url.path)
    return await call_next(request)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health():
    return {"status": "ok"}


def run():
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)
