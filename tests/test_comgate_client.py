"""
Tests for the Comgate API client.

HTTP is served by httpx.MockTransport; no network access.
"""
import base64
import json
from types import SimpleNamespace
from typing import Any, Callable, List

import httpx
import pytest

from order_settlement.domain.exceptions import GatewayError, GatewayErrorType
from order_settlement.integrations.comgate_client import (
    ComgateClient,
    PayerContact,
    parse_price_cents,
)

Handler = Callable[[httpx.Request], httpx.Response]


def make_client(settings: Any, handler: Handler, seen: List[httpx.Request]) -> ComgateClient:
    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return ComgateClient(settings=settings, transport=httpx.MockTransport(record))


@pytest.fixture
def order() -> SimpleNamespace:
    return SimpleNamespace(id=42, total_cents=1100000, currency="CZK")


@pytest.fixture
def contact() -> PayerContact:
    return PayerContact(email="jana.novakova@example.com", full_name="Jana Nováková")


class TestComgateConfiguration:
    """Test suite for client configuration."""

    @pytest.mark.unit
    def test_missing_credentials(self, test_settings: Any) -> None:
        settings = test_settings.model_copy(update={"comgate_secret": None})

        with pytest.raises(GatewayError) as exc_info:
            ComgateClient(settings=settings)

        assert exc_info.value.error_type == GatewayErrorType.CONFIGURATION
        assert exc_info.value.is_configuration_error
        assert not exc_info.value.retryable
        assert "secret" in exc_info.value.message

    @pytest.mark.unit
    def test_timeouts(self, test_settings: Any) -> None:
        client = ComgateClient(settings=test_settings)

        assert client.timeout.connect == 10.0
        assert client.timeout.read == 30.0

    @pytest.mark.unit
    def test_payment_payload(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        payload = ComgateClient(settings=test_settings).build_payment_payload(order, contact)

        assert payload == {
            "test": True,
            "price": 1100000,
            "curr": "CZK",
            "label": "Order #42",
            "refId": "42",
            "method": "ALL",
            "email": "jana.novakova@example.com",
            "fullName": "Jana Nováková",
            "lang": "cs",
            "country": "CZ",
        }

    @pytest.mark.unit
    def test_full_name_falls_back_to_email(
        self, test_settings: Any, order: SimpleNamespace
    ) -> None:
        payload = ComgateClient(settings=test_settings).build_payment_payload(
            order, PayerContact(email="petr@example.com")
        )

        assert payload["fullName"] == "petr@example.com"


class TestCreatePayment:
    """Test suite for ComgateClient.create_payment."""

    @pytest.mark.asyncio
    async def test_success(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        seen: List[httpx.Request] = []
        client = make_client(
            test_settings,
            lambda request: httpx.Response(
                200,
                json={
                    "code": 0,
                    "message": "OK",
                    "transId": "AB12-CD34-EF56",
                    "redirect": "https://payments.comgate.test/client/instructions/index?id=AB12-CD34-EF56",
                },
            ),
            seen,
        )

        created = await client.create_payment(order, contact)

        assert created.payment_id == "AB12-CD34-EF56"
        assert created.payment_url.endswith("id=AB12-CD34-EF56")

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://payments.comgate.test/v2.0/payment.json"
        expected_auth = base64.b64encode(b"123456:comgate-test-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected_auth}"
        body = json.loads(request.content)
        assert body["price"] == 1100000
        assert body["refId"] == "42"

    @pytest.mark.asyncio
    async def test_non_zero_code_is_rejected(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        client = make_client(
            test_settings,
            lambda request: httpx.Response(200, json={"code": 1400, "message": "Invalid price"}),
            [],
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == GatewayErrorType.REJECTED
        assert exc_info.value.message == "Invalid price"

    @pytest.mark.asyncio
    async def test_timeout_is_transient(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(test_settings, handler, [])

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT
        assert exc_info.value.retryable
        assert isinstance(exc_info.value.original_error, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(test_settings, handler, [])

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,error_type",
        [
            (400, GatewayErrorType.REJECTED),
            (401, GatewayErrorType.REJECTED),
            (500, GatewayErrorType.TRANSIENT),
            (503, GatewayErrorType.TRANSIENT),
        ],
    )
    async def test_http_errors(
        self,
        test_settings: Any,
        order: SimpleNamespace,
        contact: PayerContact,
        status_code: int,
        error_type: GatewayErrorType,
    ) -> None:
        client = make_client(test_settings, lambda request: httpx.Response(status_code), [])

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == error_type
        assert f"HTTP {status_code}" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_malformed_json_is_transient(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        client = make_client(
            test_settings, lambda request: httpx.Response(200, content=b"<html>oops</html>"), []
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT
        assert "Invalid JSON" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_redirect_is_transient(
        self, test_settings: Any, order: SimpleNamespace, contact: PayerContact
    ) -> None:
        client = make_client(
            test_settings, lambda request: httpx.Response(200, json={"code": 0, "transId": "X"}), []
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(order, contact)

        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT

    @pytest.mark.asyncio
    async def test_invalid_order_is_not_sent(
        self, test_settings: Any, contact: PayerContact
    ) -> None:
        seen: List[httpx.Request] = []
        client = make_client(test_settings, lambda request: httpx.Response(200, json={}), seen)

        with pytest.raises(GatewayError) as exc_info:
            await client.create_payment(
                SimpleNamespace(id=1, total_cents=0, currency="CZK"), contact
            )

        assert exc_info.value.error_type == GatewayErrorType.REJECTED
        assert seen == []


class TestVerifyAndCancel:
    """Test suite for payment status and cancellation calls."""

    @pytest.mark.asyncio
    async def test_verify_payment(self, test_settings: Any) -> None:
        seen: List[httpx.Request] = []
        client = make_client(
            test_settings,
            lambda request: httpx.Response(
                200,
                json={
                    "code": 0,
                    "message": "OK",
                    "status": "PAID",
                    "test": "true",
                    "price": "1100000",
                    "curr": "CZK",
                },
            ),
            seen,
        )

        snapshot = await client.verify_payment("AB12-CD34-EF56")

        assert seen[0].method == "GET"
        assert seen[0].url.path == "/v2.0/payment/transId/AB12-CD34-EF56.json"
        assert snapshot.status == "PAID"
        assert snapshot.test is True
        assert snapshot.price == 1100000
        assert snapshot.currency == "CZK"

    @pytest.mark.asyncio
    async def test_verify_payment_decimal_price(self, test_settings: Any) -> None:
        client = make_client(
            test_settings,
            lambda request: httpx.Response(
                200, json={"code": 0, "status": "PAID", "price": "250.00", "curr": "CZK"}
            ),
            [],
        )

        snapshot = await client.verify_payment("AB12-CD34-EF56")

        assert snapshot.price == 25000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", ["abc", "inf", "NaN", ""])
    async def test_verify_payment_bad_price_is_transient(
        self, test_settings: Any, price: str
    ) -> None:
        client = make_client(
            test_settings,
            lambda request: httpx.Response(
                200, json={"code": 0, "status": "PAID", "price": price, "curr": "CZK"}
            ),
            [],
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.verify_payment("AB12-CD34-EF56")

        assert exc_info.value.error_type == GatewayErrorType.TRANSIENT
        assert "bad price" in exc_info.value.message

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value,expected",
        [
            (1100000, 1100000),
            ("1100000", 1100000),
            ("250.00", 25000),
            (250.5, 25050),
            (" 99 ", 99),
            (True, None),
            ("1e3x", None),
            ("-inf", None),
        ],
    )
    def test_parse_price_cents(self, value: Any, expected: Any) -> None:
        assert parse_price_cents(value) == expected

    @pytest.mark.asyncio
    async def test_verify_payment_error_code(self, test_settings: Any) -> None:
        client = make_client(
            test_settings,
            lambda request: httpx.Response(200, json={"code": 1400, "message": "Unknown payment"}),
            [],
        )

        with pytest.raises(GatewayError) as exc_info:
            await client.verify_payment("NOPE")

        assert exc_info.value.error_type == GatewayErrorType.REJECTED

    @pytest.mark.asyncio
    async def test_verify_blank_id(self, test_settings: Any) -> None:
        with pytest.raises(ValueError):
            await ComgateClient(settings=test_settings).verify_payment("")

    @pytest.mark.asyncio
    async def test_cancel_payment(self, test_settings: Any) -> None:
        seen: List[httpx.Request] = []
        client = make_client(
            test_settings,
            lambda request: httpx.Response(200, json={"code": 0, "message": "OK"}),
            seen,
        )

        assert await client.cancel_payment("AB12-CD34-EF56") is True
        assert seen[0].method == "DELETE"
        assert seen[0].url.path == "/v2.0/payment/transId/AB12-CD34-EF56.json"

    @pytest.mark.asyncio
    async def test_cancel_payment_refused(self, test_settings: Any) -> None:
        client = make_client(
            test_settings,
            lambda request: httpx.Response(200, json={"code": 1500, "message": "Already paid"}),
            [],
        )

        assert await client.cancel_payment("AB12-CD34-EF56") is False
