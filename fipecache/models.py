# fipecache/models.py
"""SQLAlchemy ORM models for the FIPE cache.

Four hierarchy tables keyed by upstream codes (brand -> model -> year ->
value) and the `fipe_updates` run log. Children reference parents by
surrogate id, so a wipe has to delete values, years, models, brands in that
order.
"""
import enum
from sqlalchemy import (
    Column, Integer, Text, Numeric, TIMESTAMP, ForeignKey, UniqueConstraint, func, Index,
)
from .db import Base


class RunStatus(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class FipeBrand(Base):
    __tablename__ = "fipe_brands"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)


class FipeModel(Base):
    __tablename__ = "fipe_models"
    __table_args__ = (UniqueConstraint("brand_id", "code", name="uq_fipe_models_brand_code"),)
    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(Integer, ForeignKey("fipe_brands.id"), nullable=False)
    code = Column(Text, nullable=False)
    name = Column(Text, nullable=False)


class FipeYear(Base):
    __tablename__ = "fipe_years"
    __table_args__ = (UniqueConstraint("model_id", "code", name="uq_fipe_years_model_code"),)
    id = Column(Integer, primary_key=True, index=True)
    model_id = Column(Integer, ForeignKey("fipe_models.id"), nullable=False)
    code = Column(Text, nullable=False)
    # label such as "2020 Gasolina"
    name = Column(Text, nullable=False)


class FipeValue(Base):
    __tablename__ = "fipe_values"
    id = Column(Integer, primary_key=True, index=True)
    year_id = Column(Integer, ForeignKey("fipe_years.id"), nullable=False, unique=True)
    price = Column(Numeric(12, 2))
    brand_name = Column(Text)
    model_name = Column(Text)
    model_year = Column(Text, nullable=False)
    fuel = Column(Text)
    fipe_code = Column(Text)
    reference_month = Column(Text)
    vehicle_type = Column(Integer)
    fuel_abbreviation = Column(Text)
    fetched_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class FipeUpdate(Base):
    __tablename__ = "fipe_updates"
    id = Column(Integer, primary_key=True, index=True)
    status = Column(Text, nullable=False, default=RunStatus.RUNNING.value)
    total_brands = Column(Integer, nullable=False, default=0)
    total_models = Column(Integer, nullable=False, default=0)
    total_years = Column(Integer, nullable=False, default=0)
    total_values = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    started_at = Column(TIMESTAMP(timezone=True), nullable=False)
    finished_at = Column(TIMESTAMP(timezone=True))

Index("idx_fipe_values_model_year", FipeValue.model_year)
Index("idx_fipe_updates_started_at", FipeUpdate.started_at)
