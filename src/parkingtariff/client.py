import logging
from datetime import datetime
from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .config import Config
from .models import (
    ActiveSessionPage,
    Facility,
    PriceException,
    VehicleHistoryPage,
    VehicleSession,
    WeeklyPriceRule,
)
from .utils.time_utils import TimeZoneNormalizer
from .validators import PriceExceptionCreate, PriceRuleCreate

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
P = TypeVar("P", bound=ActiveSessionPage)


class ApiError(Exception):
    """Non-2xx answer from the parking API."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 kind: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.kind = kind
        self.field = field


class ApiConnectionError(ApiError):
    pass


def _detail_message(payload: Any) -> Optional[str]:
    """First `detail[].msg` of an error body, if any."""
    if not isinstance(payload, dict):
        return None
    detail = payload.get("detail")
    if isinstance(detail, list) and detail and isinstance(detail[0], dict):
        return detail[0].get("msg")
    if isinstance(detail, str):
        return detail
    return None


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        logger.error(f"Non-JSON body from {response.request.url}: {e}")
        raise ApiError("Unexpected response from server.", status_code=response.status_code) from e


def _parse_list(items: Any, model: Type[T]) -> List[T]:
    """Parse records one by one so one bad row doesn't hide the rest"""
    if isinstance(items, dict) and isinstance(items.get("data"), list):
        items = items["data"]
    if not isinstance(items, list):
        return []

    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {model.__name__} from API: {e}")
    return parsed


def _parse_page(payload: Any, page_model: Type[P], skip: int, limit: int) -> P:
    """Paginated session listing; the API answers either an envelope or a bare array."""
    if isinstance(payload, list):
        return page_model(skip=skip, limit=limit, total=len(payload),
                          data=_parse_list(payload, VehicleSession))

    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        items = payload["data"]
        return page_model(
            skip=skip if payload.get("skip") is None else payload["skip"],
            limit=limit if payload.get("limit") is None else payload["limit"],
            total=len(items) if payload.get("total") is None else payload["total"],
            data=_parse_list(items, VehicleSession),
        )

    logger.warning(f"Unexpected {page_model.__name__} payload, treating as empty")
    return page_model(skip=skip, limit=limit, total=0, data=[])


class ParkingApiClient:
    """Thin async adapter over the parking API.

    The API is the system of record for facilities, prices and sessions;
    nothing here computes prices.
    """

    def __init__(self, config: Config = None, transport: httpx.AsyncBaseTransport = None):
        self.config = config or Config.load()
        self._transport = transport
        self.http: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self._init_http()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _init_http(self):
        headers = {"Accept": "application/json"}
        if self.config.api.token:
            headers["Authorization"] = f"Bearer {self.config.api.token}"
        self.http = httpx.AsyncClient(
            base_url=self.config.api.base_url.rstrip("/"),
            headers=headers,
            timeout=self.config.api.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, default_error: str, **kwargs) -> httpx.Response:
        if self.http is None:
            await self._init_http()

        logger.debug(f"{method} {path}")
        try:
            response = await self.http.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"Connection error on {method} {path}: {e}")
            raise ApiConnectionError("Connection error. Try again.") from e

        if response.is_success:
            return response

        kind = None
        try:
            payload = response.json()
            message = _detail_message(payload)
            kind = payload.get("kind") if isinstance(payload, dict) else None
        except ValueError:
            message = None

        if not message:
            if response.status_code == 422:
                message = "Invalid data. Check the submitted fields."
            elif response.status_code >= 500:
                message = "Server error. Try again later."
            else:
                message = default_error

        logger.error(f"{method} {path} failed with {response.status_code}: {message}")
        raise ApiError(message, status_code=response.status_code, kind=kind)

    async def get_company(self, company_id: str) -> Facility:
        response = await self._request("GET", f"/api/core/company/{company_id}", "Error loading company")
        data = _json(response)
        if not isinstance(data, dict):
            # Let pydantic report the bad payload
            return Facility.model_validate(data)
        return Facility.model_validate({
            **data,
            "parking_prices": _parse_list(data.get("parking_prices"), WeeklyPriceRule),
            "parking_exceptions": _parse_list(data.get("parking_exceptions"), PriceException),
        })

    async def list_prices(self, company_id: str) -> List[WeeklyPriceRule]:
        try:
            response = await self._request("GET", f"/api/core/company/{company_id}/price/list",
                                           "Error listing prices")
        except ApiError as e:
            if e.status_code == 404:
                return []
            raise
        return _parse_list(_json(response), WeeklyPriceRule)

    async def list_active_sessions(self, company_id: str, skip: int = 0, limit: int = 10) -> ActiveSessionPage:
        response = await self._request(
            "GET", f"/api/core/company/{company_id}/active-vehicles",
            "Error loading active vehicles",
            params={"skip": skip, "limit": limit},
        )
        return _parse_page(_json(response), ActiveSessionPage, skip, limit)

    async def list_history(self, company_id: str, skip: int = 0, limit: int = 10) -> VehicleHistoryPage:
        """Entrance and exit records of the company (the report endpoint)."""
        response = await self._request(
            "GET", f"/api/core/company/{company_id}/report",
            "Error loading vehicle history",
            params={"skip": skip, "limit": limit},
        )
        return _parse_page(_json(response), VehicleHistoryPage, skip, limit)

    async def register_entrance(self, company_id: str, plate: str) -> None:
        logger.info(f"Registering entrance of {plate} at {company_id}")
        await self._request("POST", f"/api/core/company/{company_id}/register-entrance",
                            "Error registering vehicle entrance", json={"plate": plate})

    async def register_exit(self, company_id: str, plate: str,
                            ended_at: Optional[datetime] = None) -> VehicleSession:
        """Close the session; the returned session carries the server's total."""
        logger.info(f"Registering exit of {plate} at {company_id}")
        body = {"plate": plate}
        if ended_at is not None:
            body["ended_at"] = TimeZoneNormalizer.parse_instant(ended_at).isoformat().replace("+00:00", "Z")
        response = await self._request("POST", f"/api/core/company/{company_id}/register-exit",
                                       "Error registering vehicle exit", json=body)
        session = VehicleSession.model_validate(_json(response))
        if session.plate is None:
            session.plate = plate
        return session

    async def create_price(self, company_id: str, price: PriceRuleCreate) -> None:
        await self._request("POST", f"/api/core/company/{company_id}/price/",
                            "Error creating price", json=price.model_dump(mode="json"))

    async def create_price_exception(self, company_id: str, exception: PriceExceptionCreate) -> None:
        try:
            await self._request("POST", f"/api/core/company/{company_id}/price/exception",
                                "Error creating price exception", json=exception.model_dump(mode="json"))
        except ApiError as e:
            # The API refuses a second exception on the same date this way
            if e.kind == "INVALID_OPERATION":
                e.field = "exception_date"
            raise

    async def close(self):
        if self.http:
            await self.http.aclose()
            self.http = None
