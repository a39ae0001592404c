# fipecache/api/routes.py
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from typing import List, Optional
from .. import schemas
from ..db import get_db
from ..exceptions import RefreshInProgressError, UpstreamError, ValueNotFoundError
from ..fipe_client import FipeClient
from ..services import FipeCacheReader, FipeRefreshService
from ..utils import logger

router = APIRouter()


def get_live_client(request: Request) -> FipeClient:
    """Cached client used for on-demand upstream lookups."""
    return request.app.state.fipe_client


def get_refresh_client():
    """Uncached client: a refresh must see current upstream data."""
    with FipeClient() as client:
        yield client


def _require_year(year: Optional[str]) -> str:
    if not year:
        raise HTTPException(status_code=400, detail="Query parameter 'year' is required")
    return year


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/fipe/years", response_model=List[schemas.CodeName])
def years(db: Session = Depends(get_db)):
    return FipeCacheReader(db).get_years()


@router.get("/fipe/brands", response_model=List[schemas.CodeName])
def brands(year: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return FipeCacheReader(db).get_brands_by_year(_require_year(year))


@router.get("/fipe/brands/{brand_code}/models", response_model=List[schemas.CodeName])
def models(brand_code: str, year: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return FipeCacheReader(db).get_models_by_year_and_brand(_require_year(year), brand_code)


@router.get("/fipe/brands/{brand_code}/models/{model_code}/value", response_model=schemas.ValueOut)
def value(brand_code: str, model_code: str, year: Optional[str] = Query(None), db: Session = Depends(get_db)):
    try:
        return FipeCacheReader(db).get_value_by_year_brand_model(_require_year(year), brand_code, model_code)
    except ValueNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/fipe/search", response_model=schemas.ValueOut)
def search(payload: schemas.SearchRequest, client: FipeClient = Depends(get_live_client)):
    try:
        return client.value(payload.brand_code, payload.model_code, payload.year_code)
    except UpstreamError as e:
        logger.warning("Live FIPE lookup failed: %s", e)
        raise HTTPException(status_code=502, detail="FIPE lookup failed")


@router.post("/fipe/update", response_model=schemas.RefreshStats)
def trigger_update(db: Session = Depends(get_db), client: FipeClient = Depends(get_refresh_client)):
    try:
        return FipeRefreshService(db, client).perform_full_update()
    except RefreshInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception("FIPE update failed: %s", e)
        raise HTTPException(status_code=500, detail=f"FIPE update failed: {e}")


@router.get("/fipe/cache/stats", response_model=schemas.CacheStats)
def cache_stats(db: Session = Depends(get_db)):
    return FipeCacheReader(db).get_cache_stats()


@router.get("/fipe/cache/status", response_model=schemas.CacheStatus)
def cache_status(db: Session = Depends(get_db)):
    return FipeRefreshService(db).get_cache_status()
