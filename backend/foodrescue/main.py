from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foodrescue.api.health import router as health_router
from foodrescue.api.routes_browse import router as browse_router
from foodrescue.api.routes_cart import router as cart_router
from foodrescue.api.routes_order import router as order_router
from foodrescue.config import settings
from foodrescue.db import init_db
from foodrescue.utils.logging import get_logger

log = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup; RESET_DB=1 drops and recreates the schema
    init_db()
    log.info("food rescue backend ready (db=%s)", settings.DATABASE_URL)
    yield


app = FastAPI(title="Food Rescue Marketplace - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(browse_router, tags=["browse"])

app.include_router(cart_router, tags=["cart"])

app.include_router(order_router, prefix="/api/orders", tags=["orders"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("foodrescue.main:app", host=settings.APP_HOST, port=settings.APP_PORT)
