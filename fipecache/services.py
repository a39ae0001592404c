# fipecache/services.py
"""Refresh orchestration and local lookups for the FIPE cache.

`FipeRefreshService` walks the upstream hierarchy and rewrites the cache
tables; `FipeCacheReader` answers lookups from those tables only. The two
share the database and nothing else.

A refresh is a capped walk: every brand is stored, but only the first
`max_brands` brands (by name) get their models fetched, and likewise for
models per brand and years per model. Each brand, model and year step is
isolated, so one failing branch costs that branch and nothing more. Failures
in the run bookkeeping, the wipe or the top-level brand fetch mark the run as
``error`` and propagate.
"""
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, TypeVar

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from . import crud
from .exceptions import RefreshInProgressError, ValueNotFoundError
from .fipe_client import FipeClient
from .models import FipeValue, FipeUpdate, RunStatus
from .utils import logger

load_dotenv()
REFRESH_INTERVAL_HOURS = float(os.getenv("FIPE_REFRESH_INTERVAL_HOURS", "24"))
STALE_RUN_HOURS = float(os.getenv("FIPE_STALE_RUN_HOURS", "2"))
MAX_BRANDS = int(os.getenv("FIPE_MAX_BRANDS", "10"))
MAX_MODELS_PER_BRAND = int(os.getenv("FIPE_MAX_MODELS_PER_BRAND", "5"))
MAX_YEARS_PER_MODEL = int(os.getenv("FIPE_MAX_YEARS_PER_MODEL", "3"))

T = TypeVar("T")

# one refresh at a time per process, whichever service instance starts it
_refresh_lock = threading.Lock()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    # SQLite hands timestamps back naive; they were written as UTC
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def isolated(step: Callable[[], T], fallback: T, label: str,
             on_error: Optional[Callable[[], None]] = None) -> T:
    """Run `step`; on failure log it, call `on_error` and return `fallback`."""
    try:
        return step()
    except Exception as e:
        logger.exception("%s failed: %s", label, e)
        if on_error is not None:
            on_error()
        return fallback


class FipeRefreshService:
    def __init__(self, db: Session, client: Optional[FipeClient] = None,
                 refresh_interval: timedelta = timedelta(hours=REFRESH_INTERVAL_HOURS),
                 stale_run_after: timedelta = timedelta(hours=STALE_RUN_HOURS),
                 max_brands: int = MAX_BRANDS,
                 max_models_per_brand: int = MAX_MODELS_PER_BRAND,
                 max_years_per_model: int = MAX_YEARS_PER_MODEL,
                 clock: Callable[[], datetime] = utcnow,
                 lock: threading.Lock = _refresh_lock):
        self.db = db
        self.client = client
        self.refresh_interval = refresh_interval
        self.stale_run_after = stale_run_after
        self.max_brands = max_brands
        self.max_models_per_brand = max_models_per_brand
        self.max_years_per_model = max_years_per_model
        self.clock = clock
        self._lock = lock

    # --- staleness ------------------------------------------------------

    def _is_abandoned(self, run: FipeUpdate) -> bool:
        return self.clock() - _as_utc(run.started_at) >= self.stale_run_after

    def _is_due(self, last: Optional[FipeUpdate]) -> bool:
        if last is None:
            return True
        if last.status == RunStatus.ERROR.value:
            return True
        if last.status == RunStatus.RUNNING.value:
            return self._is_abandoned(last)
        return self.clock() - _as_utc(last.started_at) >= self.refresh_interval

    def _due_at(self, last: FipeUpdate) -> datetime:
        if last.status == RunStatus.RUNNING.value:
            return _as_utc(last.started_at) + self.stale_run_after
        return _as_utc(last.started_at) + self.refresh_interval

    def needs_update(self) -> bool:
        """True when the cache is cold, stale, or the last run did not finish."""
        try:
            last = crud.get_latest_run(self.db)
        except Exception as e:
            logger.exception("Could not read FIPE run log, assuming refresh is due: %s", e)
            self.db.rollback()
            return True
        return self._is_due(last)

    def next_update_at(self) -> Optional[datetime]:
        """When the next refresh becomes due, or None if it is due now."""
        last = crud.get_latest_run(self.db)
        return None if self._is_due(last) else self._due_at(last)

    def get_cache_status(self) -> Dict:
        last = crud.get_latest_run(self.db)
        due = self._is_due(last)
        return {
            "last_run": last,
            "needs_update": due,
            "next_update_at": None if due else self._due_at(last),
        }

    # --- writes ---------------------------------------------------------

    def clear_old_data(self):
        logger.info("Clearing cached FIPE hierarchy")
        crud.clear_hierarchy(self.db)

    def _save_brands(self) -> int:
        brands = self.client.brands()
        logger.info("Saving %d brands", len(brands))
        for b in brands:
            crud.upsert_brand(self.db, b["code"], b["name"])
        return len(brands)

    def _save_models(self, brand) -> int:
        models = self.client.models(brand.code)
        for m in models:
            crud.upsert_model(self.db, brand.id, m["code"], m["name"])
        logger.info("Saved %d models for brand %s", len(models), brand.name)
        return len(models)

    def _save_years(self, brand, model) -> int:
        years = self.client.years(brand.code, model.code)
        for y in years:
            crud.upsert_year(self.db, model.id, y["code"], y["name"])
        return len(years)

    def _save_value(self, brand, model, year) -> int:
        value = self.client.value(brand.code, model.code, year.code)
        # key lookups by the hierarchy label, not the upstream numeric year
        value["model_year"] = year.name
        crud.upsert_value(self.db, year.id, value)
        return 1

    def _isolated(self, step: Callable[[], int], label: str) -> int:
        return isolated(step, 0, label, on_error=self.db.rollback)

    def _walk(self, stats: Dict[str, int]):
        for brand in crud.list_brands(self.db, limit=self.max_brands):
            stats["models"] += self._isolated(
                lambda: self._save_models(brand), f"Models of brand {brand.code}")
            for model in crud.list_models(self.db, brand.id, limit=self.max_models_per_brand):
                stats["years"] += self._isolated(
                    lambda: self._save_years(brand, model), f"Years of model {brand.code}/{model.code}")
                for year in crud.list_years(self.db, model.id, limit=self.max_years_per_model):
                    stats["values"] += self._isolated(
                        lambda: self._save_value(brand, model, year),
                        f"Value of {brand.code}/{model.code}/{year.code}")

    def _ensure_idle(self):
        last = crud.get_latest_run(self.db)
        if last is not None and last.status == RunStatus.RUNNING.value and not self._is_abandoned(last):
            raise RefreshInProgressError(f"FIPE refresh {last.id} started at {last.started_at} is still running")

    def perform_full_update(self) -> Dict[str, int]:
        """Wipe and repopulate the cache; returns brand/model/year/value counts."""
        if self.client is None:
            raise ValueError("perform_full_update needs a FipeClient")
        if not self._lock.acquire(blocking=False):
            raise RefreshInProgressError("A FIPE refresh is already running in this process")
        try:
            self._ensure_idle()
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> Dict[str, int]:
        stats = {"brands": 0, "models": 0, "years": 0, "values": 0}
        run = None
        try:
            logger.info("Starting full FIPE refresh")
            run = crud.start_run(self.db, self.clock())
            self.clear_old_data()
            stats["brands"] = self._save_brands()
            self._walk(stats)
        except Exception as e:
            logger.exception("FIPE refresh failed: %s", e)
            self.db.rollback()
            if run is not None:
                self._record_failure(run.id, stats, str(e))
            raise
        crud.finish_run(self.db, run.id, stats, self.clock())
        logger.info("FIPE refresh finished: %s", stats)
        return stats

    def _record_failure(self, run_id: int, stats: Dict[str, int], message: str):
        try:
            crud.finish_run(self.db, run_id, stats, self.clock(), error=message or "refresh failed")
        except Exception as e:
            logger.exception("Could not mark FIPE refresh %s as failed: %s", run_id, e)
            self.db.rollback()


class FipeCacheReader:
    """Lookups served purely from the local cache tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_years(self) -> List[Dict[str, str]]:
        return crud.distinct_years(self.db)

    def get_brands_by_year(self, year: str) -> List[Dict[str, str]]:
        return crud.brands_by_year(self.db, year)

    def get_models_by_year_and_brand(self, year: str, brand_code: str) -> List[Dict[str, str]]:
        return crud.models_by_year_and_brand(self.db, year, brand_code)

    def get_value_by_year_brand_model(self, year: str, brand_code: str, model_code: str) -> FipeValue:
        value = crud.value_by_year_brand_model(self.db, year, brand_code, model_code)
        if value is None:
            raise ValueNotFoundError(f"No FIPE value for year={year} brand={brand_code} model={model_code}")
        return value

    def get_cache_stats(self) -> Dict:
        stats = crud.table_counts(self.db)
        last = crud.get_latest_run(self.db)
        stats["last_update"] = last.started_at if last else None
        return stats
