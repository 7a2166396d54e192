import json
from datetime import date, datetime, timezone

import httpx
import pytest

from parkingtariff.client import ApiConnectionError, ApiError, ParkingApiClient
from parkingtariff.validators import PriceExceptionCreate, PriceRuleCreate

COMPANY = {
    "id": "company-1",
    "name": "Estacionamento Centro",
    "total_spots": 50,
    "address": "Rua A, 1",
    "parking_prices": [
        {"week_day": 2, "start_hour": 8, "end_hour": 18, "price_cents": 500, "is_discount": False},
        {"week_day": "not-a-day", "start_hour": 8, "end_hour": 18, "price_cents": 1},
    ],
    "parking_exceptions": [
        {"exception_date": "2025-01-15", "start_hour": 10, "end_hour": 14, "price_cents": 300,
         "is_discount": True, "description": "Promo"},
    ],
}


def make_client(config, handler):
    return ParkingApiClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_get_company_skips_invalid_records(config):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=COMPANY)

    async with make_client(config, handler) as client:
        facility = await client.get_company("company-1")

    assert seen["path"] == "/api/core/company/company-1"
    assert seen["auth"] == "Bearer secret-token"
    assert facility.name == "Estacionamento Centro"
    assert [p.price_cents for p in facility.parking_prices] == [500]
    assert facility.parking_exceptions[0].exception_date == date(2025, 1, 15)


@pytest.mark.asyncio
async def test_list_prices_envelope_and_bare_list(config):
    rule = {"week_day": 0, "start_hour": 8, "end_hour": 12, "price_cents": 400, "is_discount": False}
    responses = [httpx.Response(200, json={"data": [rule]}), httpx.Response(200, json=[rule, rule])]

    def handler(request):
        assert request.url.path == "/api/core/company/c1/price/list"
        return responses.pop(0)

    async with make_client(config, handler) as client:
        assert len(await client.list_prices("c1")) == 1
        assert len(await client.list_prices("c1")) == 2


@pytest.mark.asyncio
async def test_list_prices_not_found_is_empty(config):
    async with make_client(config, lambda request: httpx.Response(404, json={})) as client:
        assert await client.list_prices("c1") == []


@pytest.mark.asyncio
async def test_list_active_sessions(config):
    def handler(request):
        assert request.url.path == "/api/core/company/c1/active-vehicles"
        assert request.url.params["skip"] == "0"
        assert request.url.params["limit"] == "10"
        return httpx.Response(200, json={
            "skip": 0,
            "limit": 10,
            "total": 1,
            "data": [{
                "vehicle_id": "v1",
                "company_id": "c1",
                "entrance_date": "2025-01-15T12:00:00Z",
                "hourly_rate": 600,
                "plate": "ABC1D23",
            }],
        })

    async with make_client(config, handler) as client:
        page = await client.list_active_sessions("c1")

    assert page.total == 1
    assert page.data[0].plate == "ABC1D23"
    assert page.data[0].is_open


@pytest.mark.asyncio
async def test_register_entrance_posts_plate(config):
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/api/core/company/c1/register-entrance"
        assert json.loads(request.content) == {"plate": "ABC1D23"}
        return httpx.Response(201, json={})

    async with make_client(config, handler) as client:
        assert await client.register_entrance("c1", "ABC1D23") is None


@pytest.mark.asyncio
async def test_register_exit_returns_authoritative_total(config):
    def handler(request):
        assert request.url.path == "/api/core/company/c1/register-exit"
        assert json.loads(request.content) == {"plate": "ABC1D23", "ended_at": "2025-01-15T14:00:00Z"}
        return httpx.Response(200, json={
            "vehicle_id": "v1",
            "company_id": "c1",
            "entrance_date": "2025-01-15T12:00:00Z",
            "ended_at": "2025-01-15T14:00:00Z",
            "total_price": 1150,
            "hourly_rate": 600,
        })

    async with make_client(config, handler) as client:
        session = await client.register_exit("c1", "ABC1D23", datetime(2025, 1, 15, 14, 0, tzinfo=timezone.utc))

    assert session.total_price_cents == 1150
    assert session.plate == "ABC1D23"
    assert not session.is_open


@pytest.mark.asyncio
async def test_register_exit_without_time_omits_field(config):
    def handler(request):
        assert json.loads(request.content) == {"plate": "ABC1D23"}
        return httpx.Response(200, json={
            "vehicle_id": "v1",
            "company_id": "c1",
            "entrance_date": "2025-01-15T12:00:00Z",
            "ended_at": "2025-01-15T14:00:00Z",
            "total_price": 1200,
            "hourly_rate": 600,
        })

    async with make_client(config, handler) as client:
        await client.register_exit("c1", "ABC1D23")


@pytest.mark.asyncio
async def test_error_detail_message(config):
    def handler(request):
        return httpx.Response(400, json={"detail": [{"msg": "Vehicle not inside"}]})

    async with make_client(config, handler) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.register_exit("c1", "ABC1D23")

    assert exc_info.value.message == "Vehicle not inside"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
@pytest.mark.parametrize("status, message", [
    (422, "Invalid data. Check the submitted fields."),
    (500, "Server error. Try again later."),
    (409, "Error registering vehicle entrance"),
])
async def test_error_defaults_by_status(config, status, message):
    async with make_client(config, lambda request: httpx.Response(status, text="oops")) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.register_entrance("c1", "ABC1D23")
    assert exc_info.value.message == message


@pytest.mark.asyncio
async def test_connection_error(config):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with make_client(config, handler) as client:
        with pytest.raises(ApiConnectionError):
            await client.get_company("c1")


@pytest.mark.asyncio
async def test_create_price_sends_validated_payload(config):
    def handler(request):
        assert request.url.path == "/api/core/company/c1/price/"
        assert json.loads(request.content) == {
            "week_day": 2, "start_hour": 8, "end_hour": 18, "price_cents": 500, "is_discount": False,
        }
        return httpx.Response(201, json={})

    async with make_client(config, handler) as client:
        await client.create_price("c1", PriceRuleCreate(week_day=2, start_hour=8, end_hour=18, price_cents=500))


@pytest.mark.asyncio
async def test_create_exception_duplicate_date_flags_field(config):
    def handler(request):
        assert request.url.path == "/api/core/company/c1/price/exception"
        assert json.loads(request.content)["exception_date"] == "2025-12-25"
        return httpx.Response(400, json={
            "kind": "INVALID_OPERATION",
            "detail": [{"msg": "Exception already exists for this date"}],
        })

    exception = PriceExceptionCreate(exception_date="2025-12-25", start_hour=0, end_hour=23, price_cents=0)
    async with make_client(config, handler) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.create_price_exception("c1", exception)

    assert exc_info.value.kind == "INVALID_OPERATION"
    assert exc_info.value.field == "exception_date"


SESSION = {
    "vehicle_id": "v1",
    "company_id": "c1",
    "entrance_date": "2025-01-15T12:00:00Z",
    "hourly_rate": 600,
    "plate": "ABC1D23",
}


@pytest.mark.asyncio
async def test_list_active_sessions_bare_array(config):
    def handler(request):
        return httpx.Response(200, json=[SESSION, {**SESSION, "vehicle_id": "v2", "plate": "XYZ9A87"}])

    async with make_client(config, handler) as client:
        page = await client.list_active_sessions("c1", skip=20, limit=5)

    assert (page.skip, page.limit, page.total) == (20, 5, 2)
    assert [s.plate for s in page.data] == ["ABC1D23", "XYZ9A87"]


@pytest.mark.asyncio
async def test_list_active_sessions_envelope_without_total(config):
    def handler(request):
        return httpx.Response(200, json={"data": [SESSION], "total": None})

    async with make_client(config, handler) as client:
        page = await client.list_active_sessions("c1")

    assert (page.skip, page.limit, page.total) == (0, 10, 1)


@pytest.mark.asyncio
async def test_list_active_sessions_unknown_shape_is_empty(config):
    async with make_client(config, lambda request: httpx.Response(200, json={"items": []})) as client:
        page = await client.list_active_sessions("c1")

    assert page.total == 0
    assert page.data == []


@pytest.mark.asyncio
async def test_list_history(config):
    closed = {**SESSION, "ended_at": "2025-01-15T14:00:00Z", "total_price": 1200}

    def handler(request):
        assert request.url.path == "/api/core/company/c1/report"
        assert request.url.params["skip"] == "10"
        assert request.url.params["limit"] == "10"
        return httpx.Response(200, json={"skip": 10, "limit": 10, "total": 12, "data": [closed, SESSION]})

    async with make_client(config, handler) as client:
        page = await client.list_history("c1", skip=10)

    assert page.total == 12
    assert page.data[0].total_price_cents == 1200
    assert not page.data[0].is_open
    assert page.data[1].is_open


@pytest.mark.asyncio
async def test_non_json_success_body(config):
    async with make_client(config, lambda request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.list_history("c1")

    assert exc_info.value.message == "Unexpected response from server."
