# fipecache/fipe_client.py
"""HTTP client for the public FIPE pricing API.

The API is a four-level hierarchy::

    /{vehicle_type}/marcas
    /{vehicle_type}/marcas/{brand}/modelos
    /{vehicle_type}/marcas/{brand}/modelos/{model}/anos
    /{vehicle_type}/marcas/{brand}/modelos/{model}/anos/{year}

Every call either returns normalized data or raises `UpstreamError`. The
client holds no global state; pass a `TTLCache` to memoize responses.
"""
import os
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from .cache import TTLCache
from .exceptions import UpstreamError
from .utils import logger, retry

load_dotenv()
FIPE_BASE_URL = os.getenv("FIPE_BASE_URL", "https://parallelum.com.br/fipe/api/v1")
FIPE_VEHICLE_TYPE = os.getenv("FIPE_VEHICLE_TYPE", "carros")
FIPE_HTTP_TIMEOUT = float(os.getenv("FIPE_HTTP_TIMEOUT", "30"))
FIPE_HTTP_TRIES = int(os.getenv("FIPE_HTTP_TRIES", "2"))


def parse_price(raw) -> Decimal:
    """Convert "R$ 85.000,00" into Decimal("85000.00")."""
    if isinstance(raw, (int, float, Decimal)):
        return Decimal(str(raw))
    if not isinstance(raw, str):
        raise UpstreamError(f"Unexpected price value: {raw!r}")
    cleaned = raw.replace("R$", "").strip().replace(".", "").replace(",", ".")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise UpstreamError(f"Unexpected price value: {raw!r}")


def _code_names(items) -> List[Dict[str, str]]:
    try:
        return [{"code": str(it["codigo"]), "name": str(it["nome"]).strip()} for it in items]
    except (KeyError, TypeError) as e:
        raise UpstreamError(f"Malformed FIPE listing: {e}")


def normalize_value(raw: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return {
            "price": parse_price(raw["Valor"]),
            "brand_name": raw.get("Marca"),
            "model_name": raw.get("Modelo"),
            "model_year": str(raw.get("AnoModelo", "")),
            "fuel": raw.get("Combustivel"),
            "fipe_code": raw.get("CodigoFipe"),
            "reference_month": (raw.get("MesReferencia") or "").strip() or None,
            "vehicle_type": raw.get("TipoVeiculo"),
            "fuel_abbreviation": raw.get("SiglaCombustivel"),
        }
    except (KeyError, TypeError, AttributeError) as e:
        raise UpstreamError(f"Malformed FIPE value: {e}")


class FipeClient:
    def __init__(self, base_url: str = FIPE_BASE_URL, vehicle_type: str = FIPE_VEHICLE_TYPE,
                 timeout: float = FIPE_HTTP_TIMEOUT, session: Optional[requests.Session] = None,
                 cache: Optional[TTLCache] = None):
        self.base_url = base_url.rstrip("/")
        self.vehicle_type = vehicle_type
        self.timeout = timeout
        # only close sessions this client opened itself
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.cache = cache

    def close(self):
        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def _get(self, path: str):
        if self.cache is not None:
            cached = self.cache.get(path)
            if cached is not None:
                return cached
        data = self._fetch(path)
        if self.cache is not None:
            self.cache.set(path, data)
        return data

    @retry(UpstreamError, tries=FIPE_HTTP_TRIES, delay=1, backoff=2, when=lambda e: e.retryable)
    def _fetch(self, path: str):
        url = f"{self.base_url}/{self.vehicle_type}/{path}"
        logger.debug("GET %s", url)
        try:
            r = self.session.get(url, timeout=self.timeout)
            r.raise_for_status()
            return r.json()
        except requests.HTTPError as e:
            status = getattr(e.response, "status_code", None)
            # a 4xx will not succeed on a second try
            raise UpstreamError(f"GET {url} failed: {e}", status_code=status,
                                retryable=status is None or status >= 500) from e
        except ValueError as e:
            # checked before RequestException: requests' JSONDecodeError is both
            raise UpstreamError(f"GET {url} returned invalid JSON: {e}") from e
        except requests.RequestException as e:
            raise UpstreamError(f"GET {url} failed: {e}", retryable=True) from e

    def brands(self) -> List[Dict[str, str]]:
        return _code_names(self._get("marcas"))

    def models(self, brand_code: str) -> List[Dict[str, str]]:
        data = self._get(f"marcas/{brand_code}/modelos")
        if not isinstance(data, dict) or "modelos" not in data:
            raise UpstreamError(f"Malformed model listing for brand {brand_code}")
        return _code_names(data["modelos"])

    def years(self, brand_code: str, model_code: str) -> List[Dict[str, str]]:
        return _code_names(self._get(f"marcas/{brand_code}/modelos/{model_code}/anos"))

    def value(self, brand_code: str, model_code: str, year_code: str) -> Dict[str, Any]:
        data = self._get(f"marcas/{brand_code}/modelos/{model_code}/anos/{year_code}")
        if not isinstance(data, dict):
            raise UpstreamError(f"Malformed value for {brand_code}/{model_code}/{year_code}")
        return normalize_value(data)
