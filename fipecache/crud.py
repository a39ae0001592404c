# fipecache/crud.py
"""Persistence helpers for the FIPE cache tables.

Upserts are idempotent on each table's natural key (upstream code scoped to
the parent) and commit per row. Reads return ORM objects or plain
``{"code", "name"}`` dicts for the lookup endpoints.
"""
from datetime import datetime
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, Any, List, Optional
from .models import FipeBrand, FipeModel, FipeYear, FipeValue, FipeUpdate, RunStatus


def _insert(db: Session, model):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model.__table__)
    return pg_insert(model.__table__)


def _code_names(rows) -> List[Dict[str, str]]:
    return [{"code": r.code, "name": r.name} for r in rows]


# --- hierarchy writes -------------------------------------------------------

def upsert_brand(db: Session, code: str, name: str):
    stmt = _insert(db, FipeBrand).values(code=code, name=name)
    stmt = stmt.on_conflict_do_update(index_elements=["code"], set_={"name": stmt.excluded.name})
    db.execute(stmt)
    db.commit()

def upsert_model(db: Session, brand_id: int, code: str, name: str):
    stmt = _insert(db, FipeModel).values(brand_id=brand_id, code=code, name=name)
    stmt = stmt.on_conflict_do_update(
        index_elements=["brand_id", "code"], set_={"name": stmt.excluded.name}
    )
    db.execute(stmt)
    db.commit()

def upsert_year(db: Session, model_id: int, code: str, name: str):
    stmt = _insert(db, FipeYear).values(model_id=model_id, code=code, name=name)
    stmt = stmt.on_conflict_do_update(
        index_elements=["model_id", "code"], set_={"name": stmt.excluded.name}
    )
    db.execute(stmt)
    db.commit()

def upsert_value(db: Session, year_id: int, data: Dict[str, Any]):
    table = FipeValue.__table__
    stmt = _insert(db, FipeValue).values(year_id=year_id, **data)
    # overwrite everything but the keys, and stamp the retrieval time
    excluded = {c.name: stmt.excluded[c.name] for c in table.columns if c.name not in ("id", "year_id")}
    excluded["fetched_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=["year_id"], set_=excluded)
    db.execute(stmt)
    db.commit()

def clear_hierarchy(db: Session):
    for model in (FipeValue, FipeYear, FipeModel, FipeBrand):
        db.query(model).delete(synchronize_session=False)
    db.commit()


# --- hierarchy reads used by the refresh walk -------------------------------

def list_brands(db: Session, limit: Optional[int] = None) -> List[FipeBrand]:
    q = db.query(FipeBrand).order_by(FipeBrand.name, FipeBrand.code)
    if limit is not None:
        q = q.limit(limit)
    return q.all()

def list_models(db: Session, brand_id: int, limit: Optional[int] = None) -> List[FipeModel]:
    q = db.query(FipeModel).filter(FipeModel.brand_id == brand_id).order_by(FipeModel.name, FipeModel.code)
    if limit is not None:
        q = q.limit(limit)
    return q.all()

def list_years(db: Session, model_id: int, limit: Optional[int] = None) -> List[FipeYear]:
    q = db.query(FipeYear).filter(FipeYear.model_id == model_id).order_by(FipeYear.name, FipeYear.code)
    if limit is not None:
        q = q.limit(limit)
    return q.all()


# --- run log ----------------------------------------------------------------

def start_run(db: Session, started_at: datetime) -> FipeUpdate:
    run = FipeUpdate(status=RunStatus.RUNNING.value, started_at=started_at)
    db.add(run)
    db.commit()
    db.refresh(run)
    return run

def finish_run(db: Session, run_id: int, stats: Dict[str, int], finished_at: datetime,
               error: Optional[str] = None):
    run = db.get(FipeUpdate, run_id)
    run.status = RunStatus.ERROR.value if error else RunStatus.COMPLETED.value
    run.total_brands = stats.get("brands", 0)
    run.total_models = stats.get("models", 0)
    run.total_years = stats.get("years", 0)
    run.total_values = stats.get("values", 0)
    run.error_message = error
    run.finished_at = finished_at
    db.commit()
    return run

def get_latest_run(db: Session) -> Optional[FipeUpdate]:
    return db.query(FipeUpdate).order_by(FipeUpdate.started_at.desc(), FipeUpdate.id.desc()).first()


# --- cache lookups ----------------------------------------------------------

def distinct_years(db: Session) -> List[Dict[str, str]]:
    rows = db.query(FipeValue.model_year).distinct().order_by(FipeValue.model_year.desc()).all()
    return [{"code": r.model_year, "name": r.model_year} for r in rows]

def _priced_hierarchy(db: Session, *columns):
    return (
        db.query(*columns)
        .select_from(FipeBrand)
        .join(FipeModel, FipeModel.brand_id == FipeBrand.id)
        .join(FipeYear, FipeYear.model_id == FipeModel.id)
        .join(FipeValue, FipeValue.year_id == FipeYear.id)
    )

def brands_by_year(db: Session, year: str) -> List[Dict[str, str]]:
    rows = (
        _priced_hierarchy(db, FipeBrand.code, FipeBrand.name)
        .filter(FipeValue.model_year == year)
        .distinct()
        .order_by(FipeBrand.name, FipeBrand.code)
        .all()
    )
    return _code_names(rows)

def models_by_year_and_brand(db: Session, year: str, brand_code: str) -> List[Dict[str, str]]:
    rows = (
        _priced_hierarchy(db, FipeModel.code, FipeModel.name)
        .filter(FipeValue.model_year == year, FipeBrand.code == brand_code)
        .distinct()
        .order_by(FipeModel.name, FipeModel.code)
        .all()
    )
    return _code_names(rows)

def value_by_year_brand_model(db: Session, year: str, brand_code: str, model_code: str) -> Optional[FipeValue]:
    return (
        _priced_hierarchy(db, FipeValue)
        .filter(
            FipeValue.model_year == year,
            FipeBrand.code == brand_code,
            FipeModel.code == model_code,
        )
        .first()
    )

def table_counts(db: Session) -> Dict[str, int]:
    return {
        "total_brands": db.query(func.count(FipeBrand.id)).scalar(),
        "total_models": db.query(func.count(FipeModel.id)).scalar(),
        "total_years": db.query(func.count(FipeYear.id)).scalar(),
        "total_values": db.query(func.count(FipeValue.id)).scalar(),
    }
