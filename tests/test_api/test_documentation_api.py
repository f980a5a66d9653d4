"""
文档接口测试
"""

from decimal import Decimal

import pytest


@pytest.mark.asyncio
class TestDocumentationAPI:
    """文档接口测试类"""

    async def test_get_documentation(self, client, seed):
        child = await seed.documentation()
        parent = await seed.documentation(sections=[child])

        response = await client.get(f"/documentation/{parent}")

        assert response.status_code == 200
        assert response.json()["document_sections"] == [child]

    async def test_get_missing_documentation(self, client):
        response = await client.get("/documentation/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_update_sections_reports_mutual_reference(self, client, seed):
        d2 = await seed.documentation()
        d1 = await seed.documentation(sections=[d2])

        response = await client.put(f"/documentation/{d2}/sections", json={"document_sections": [d1]})

        assert response.status_code == 200
        body = response.json()
        assert body["documentation"]["document_sections"] == [d1]
        assert body["mutual_references"] == [d1]
        assert body["graph_revision"] == 1

    async def test_self_reference_rejected(self, client, seed):
        d1 = await seed.documentation()

        response = await client.put(f"/documentation/{d1}/sections", json={"document_sections": [d1]})

        assert response.status_code == 422
        assert response.json()["error"] == "self_reference"

    async def test_cycle_rejected_with_path(self, client, seed):
        c = await seed.documentation()
        b = await seed.documentation(sections=[c])
        a = await seed.documentation(sections=[b])

        response = await client.put(f"/documentation/{c}/sections", json={"document_sections": [a]})

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "cycle"
        assert body["details"]["path"] == [c, a, b, c]

    async def test_unknown_section_rejected(self, client, seed):
        d1 = await seed.documentation()

        response = await client.put(f"/documentation/{d1}/sections", json={"document_sections": ["missing"]})

        assert response.status_code == 422
        assert response.json()["details"]["missing"] == ["missing"]

    async def test_access_check(self, client, seed):
        free_doc = await seed.documentation()
        paid_doc = await seed.documentation(price=Decimal("9.99"))

        free = await client.get(f"/documentation/{free_doc}/access", params={"user_id": "user-1"})
        paid = await client.get(f"/documentation/{paid_doc}/access", params={"user_id": "user-1"})

        assert free.json()["has_access"] is True
        assert paid.json()["has_access"] is False
