"""
折扣码校验接口测试
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from httpx import ASGITransport, AsyncClient

from app.core.database import get_db_session
from app.main import app
from app.repositories.discount_code_repository import DiscountCodeRepository


@pytest.mark.asyncio
class TestDiscountValidationApi:
    """POST /api/discounts/validate 测试类"""

    @pytest_asyncio.fixture
    async def client(self, session_factory):
        async def override_session():
            async with session_factory() as session:
                yield session
                await session.commit()

        app.dependency_overrides[get_db_session] = override_session
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
        app.dependency_overrides.clear()

    @pytest_asyncio.fixture
    async def seeded(self, session_factory, make_code_create):
        async with session_factory() as session:
            repo = DiscountCodeRepository(session)
            await repo.create(make_code_create("WELCOME10", starts_at=None, ends_at=None))
            await repo.create(
                make_code_create("BIGSPEND", min_spend=Decimal("500"), starts_at=None, ends_at=None)
            )
            await session.commit()

    @pytest.fixture
    def cart_payload(self):
        return {
            "lines": [
                {"product_id": "prod_1", "name": "Vitamin C", "category": "Vitamins", "unit_price": "120.00", "quantity": 1},
                {"product_id": "prod_2", "name": "Zinc", "category": "minerals", "unit_price": "80.00", "quantity": 1},
            ],
            "shipping_cost": "60.00",
        }

    async def test_validate_accepts_code(self, client, seeded, cart_payload):
        response = await client.post(
            "/api/discounts/validate",
            json={"codes": ["  welcome10 "], "cart": cart_payload, "customer_id": "cust_1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["accepted"][0]["code"] == "WELCOME10"
        assert Decimal(body["breakdown"]["total"]) == Decimal("240.00")

    async def test_validate_returns_generic_message_for_unknown_code(self, client, seeded, cart_payload):
        response = await client.post("/api/discounts/validate", json={"codes": ["GUESSME"], "cart": cart_payload})

        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["rejections"][0]["reason"] == "INVALID_CODE"
        assert body["rejections"][0]["message"] == "This code can't be applied."
        assert Decimal(body["breakdown"]["total"]) == Decimal("260.00")

    async def test_validate_explains_min_spend(self, client, seeded, cart_payload):
        response = await client.post("/api/discounts/validate", json={"codes": ["BIGSPEND"], "cart": cart_payload})

        rejection = response.json()["rejections"][0]
        assert rejection["reason"] == "BELOW_MIN_SPEND"
        assert "R500.00" in rejection["message"]

    async def test_validate_requires_codes(self, client, cart_payload):
        response = await client.post("/api/discounts/validate", json={"codes": [], "cart": cart_payload})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
