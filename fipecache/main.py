import os
from fastapi import FastAPI
from fipecache.db import Base, engine
import fipecache.models  # noqa: F401 ensure models are imported so tables are known
from fipecache.api.routes import router as api_router
from fipecache.cache import TTLCache
from fipecache.fipe_client import FipeClient
from fipecache.scheduler import start_scheduler, stop_scheduler
from fipecache.utils import env_bool, logger

app = FastAPI(title="FIPE cache")
app.include_router(api_router)

# live lookups share one bounded cache; the refresh path never uses it
app.state.fipe_client = FipeClient(cache=TTLCache(
    capacity=int(os.getenv("FIPE_LIVE_CACHE_SIZE", "512")),
    ttl_seconds=float(os.getenv("FIPE_LIVE_CACHE_TTL", str(24 * 60 * 60))),
))


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
    if env_bool("FIPE_SCHEDULER_ENABLED", True):
        start_scheduler()
    else:
        logger.info("FIPE scheduler disabled")


@app.on_event("shutdown")
def on_shutdown():
    stop_scheduler()
    app.state.fipe_client.close()
