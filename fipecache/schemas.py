# fipecache/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from decimal import Decimal
from datetime import datetime

class CodeName(BaseModel):
    code: str
    name: str

class ValueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())
    price: Decimal
    brand_name: Optional[str] = None
    model_name: Optional[str] = None
    model_year: str
    fuel: Optional[str] = None
    fipe_code: Optional[str] = None
    reference_month: Optional[str] = None
    vehicle_type: Optional[int] = None
    fuel_abbreviation: Optional[str] = None
    fetched_at: Optional[datetime] = None

class RefreshStats(BaseModel):
    brands: int
    models: int
    years: int
    values: int

class RefreshRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    status: str
    total_brands: int
    total_models: int
    total_years: int
    total_values: int
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

class CacheStats(BaseModel):
    total_brands: int
    total_models: int
    total_years: int
    total_values: int
    last_update: Optional[datetime] = None

class CacheStatus(BaseModel):
    last_run: Optional[RefreshRunOut] = None
    needs_update: bool
    next_update_at: Optional[datetime] = None

class SearchRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())
    brand_code: str = Field(..., min_length=1)
    model_code: str = Field(..., min_length=1)
    year_code: str = Field(..., min_length=1)
