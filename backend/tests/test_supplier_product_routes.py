"""Tests for the supplier product catalog API."""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from supplier_catalog.core.config import settings
from supplier_catalog.models.order import POStatus
from supplier_catalog.services.supplier_product_repository import SupplierProductRepository
from supplier_catalog.services.supplier_product_service import update_catalog_from_purchase_order

API = "/api/v1"


@pytest.fixture
def catalog(db_session, make_order, test_supplier, other_supplier, flour, butter):
    """Two suppliers, three catalog entries."""
    for order in (
        make_order(test_supplier, [(flour, 10, 5), (butter, 30, 2)]),
        make_order(test_supplier, [(flour, 12, 3)]),
        make_order(other_supplier, [(flour, 9, 10)]),
    ):
        update_catalog_from_purchase_order(db_session, order)
    repo = SupplierProductRepository(db_session)
    return {
        "flour": repo.find_by_key(test_supplier.id, flour.id),
        "butter": repo.find_by_key(test_supplier.id, butter.id),
        "other_flour": repo.find_by_key(other_supplier.id, flour.id),
    }


# ============== Reads ==============

class TestCatalogReads:

    def test_supplier_catalog(self, client, catalog, test_supplier):
        res = client.get(f"{API}/supplier-products/supplier/{test_supplier.id}")
        assert res.status_code == 200
        data = res.json()
        assert [e["product_name"] for e in data] == ["Butter 82%", "Wheat flour"]
        flour = data[1]
        assert flour["order_count"] == 2
        assert Decimal(flour["average_price"]) == Decimal("11")
        assert Decimal(flour["total_ordered_quantity"]) == Decimal("8")

    def test_supplier_catalog_search_and_sort(self, client, catalog, test_supplier):
        res = client.get(
            f"{API}/supplier-products/supplier/{test_supplier.id}",
            params={"search": "FLOUR"},
        )
        assert [e["id"] for e in res.json()] == [catalog["flour"].id]

        res = client.get(
            f"{API}/supplier-products/supplier/{test_supplier.id}",
            params={"order_by": "last_price", "direction": "desc"},
        )
        assert [e["id"] for e in res.json()] == [catalog["butter"].id, catalog["flour"].id]

    def test_unknown_supplier_has_empty_catalog(self, client, catalog):
        res = client.get(f"{API}/supplier-products/supplier/987")
        assert res.status_code == 200
        assert res.json() == []

    def test_product_suppliers_cheapest_first(self, client, catalog, flour):
        res = client.get(f"{API}/supplier-products/item/{flour.id}")
        assert res.status_code == 200
        assert [e["id"] for e in res.json()] == [catalog["other_flour"].id, catalog["flour"].id]

    def test_prefix_search(self, client, catalog, test_supplier):
        res = client.get(f"{API}/supplier-products/search", params={"prefix": "whe"})
        assert res.status_code == 200
        assert {e["id"] for e in res.json()} == {catalog["flour"].id, catalog["other_flour"].id}

        res = client.get(
            f"{API}/supplier-products/search",
            params={"prefix": "whe", "supplier_id": test_supplier.id},
        )
        assert [e["id"] for e in res.json()] == [catalog["flour"].id]

        res = client.get(f"{API}/supplier-products/search", params={"prefix": "100%"})
        assert res.json() == []

    def test_batch_lookup_by_ids(self, client, catalog):
        ids = [catalog["butter"].id, catalog["flour"].id, 5555]
        res = client.get(f"{API}/supplier-products/by-ids", params={"ids": ids})
        assert res.status_code == 200
        assert sorted(e["id"] for e in res.json()) == sorted(ids[:2])

    def test_reads_are_cached_until_the_catalog_changes(
        self, client, catalog, cache, db_session, make_order, test_supplier, butter
    ):
        url = f"{API}/supplier-products/supplier/{test_supplier.id}"
        first = client.get(url).json()
        assert cache.stats()["total_keys"] == 1

        res = client.post(
            f"{API}/supplier-products/from-purchase-order/"
            f"{make_order(test_supplier, [(butter, 26, 1)]).id}"
        )
        assert res.status_code == 200

        second = client.get(url).json()
        assert first != second
        assert second[0]["order_count"] == 2


# ============== Certificates ==============

class TestCertificateRoutes:

    def test_update_certificate(self, client, catalog):
        entry_id = catalog["flour"].id
        res = client.patch(
            f"{API}/supplier-products/{entry_id}/certificate",
            json={
                "certificate_unit": "Ekogwarancja PTRE",
                "certificate_number": "PL-EKO-05-0042",
                "certificate_type": "eco",
                "certificate_valid_from": "2026-01-01",
                "certificate_valid_to": "2027-01-01",
            },
        )
        assert res.status_code == 200
        data = res.json()
        assert data["certificate_type"] == "eco"
        assert data["certificate_valid_to"] == "2027-01-01"
        assert data["order_count"] == 2

    def test_update_certificate_rejects_statistics(self, client, catalog):
        res = client.patch(
            f"{API}/supplier-products/{catalog['flour'].id}/certificate",
            json={"last_price": "1.00"},
        )
        assert res.status_code == 422

    def test_update_certificate_rejects_inverted_range(self, client, catalog):
        res = client.patch(
            f"{API}/supplier-products/{catalog['flour'].id}/certificate",
            json={"certificate_valid_from": "2027-01-01", "certificate_valid_to": "2026-01-01"},
        )
        assert res.status_code == 422

    def test_update_certificate_unknown_entry(self, client, catalog):
        res = client.patch(
            f"{API}/supplier-products/777777/certificate", json={"certificate_number": "X"}
        )
        assert res.status_code == 404

    def test_upload_download_delete(self, client, catalog, test_supplier, pdf_bytes):
        entry_id = catalog["flour"].id
        res = client.post(
            f"{API}/supplier-products/supplier/{test_supplier.id}/{entry_id}/certificate/file",
            files={"file": ("atest.pdf", pdf_bytes, "application/pdf")},
        )
        assert res.status_code == 200
        data = res.json()
        assert data["certificate_file_name"] == "atest.pdf"
        assert data["certificate_file_url"] == f"{API}/supplier-products/{entry_id}/certificate/file"

        res = client.get(data["certificate_file_url"])
        assert res.status_code == 200
        assert res.content == pdf_bytes
        assert res.headers["content-type"] == "application/pdf"

        res = client.delete(f"{API}/supplier-products/{entry_id}/certificate/file")
        assert res.status_code == 200
        assert res.json()["certificate_file_name"] is None

        res = client.get(f"{API}/supplier-products/{entry_id}/certificate/file")
        assert res.status_code == 404

    def test_upload_rejects_non_pdf(self, client, catalog, test_supplier):
        res = client.post(
            f"{API}/supplier-products/supplier/{test_supplier.id}/{catalog['flour'].id}/certificate/file",
            files={"file": ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")},
        )
        assert res.status_code == 415

    def test_upload_rejects_oversized_file(self, client, catalog, test_supplier, pdf_bytes, monkeypatch):
        monkeypatch.setattr(settings, "max_certificate_size_mb", 0)
        res = client.post(
            f"{API}/supplier-products/supplier/{test_supplier.id}/{catalog['flour'].id}/certificate/file",
            files={"file": ("big.pdf", pdf_bytes, "application/pdf")},
        )
        assert res.status_code == 413

    def test_upload_wrong_supplier(self, client, catalog, other_supplier, pdf_bytes):
        res = client.post(
            f"{API}/supplier-products/supplier/{other_supplier.id}/{catalog['flour'].id}/certificate/file",
            files={"file": ("atest.pdf", pdf_bytes, "application/pdf")},
        )
        assert res.status_code == 404

    def test_expiring_certificates(self, client, catalog):
        valid_to = date.today() + timedelta(days=10)
        client.patch(
            f"{API}/supplier-products/{catalog['butter'].id}/certificate",
            json={"certificate_type": "halal", "certificate_valid_to": valid_to.isoformat()},
        )
        res = client.get(f"{API}/supplier-products/certificates/expiring", params={"days": 30})
        assert res.status_code == 200
        data = res.json()
        assert len(data) == 1
        assert data[0]["id"] == catalog["butter"].id
        assert data[0]["days_until_expiry"] == 10


# ============== Aggregation ==============

class TestAggregationRoutes:

    def test_update_from_payload(self, client, test_supplier, flour):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order",
            json={
                "id": 90,
                "number": "PO/2026/0090",
                "supplierId": test_supplier.id,
                "status": "sent",
                "currency": "PLN",
                "items": [
                    {"itemId": flour.id, "name": "Wheat flour", "unitPrice": "3.20", "quantity": "50"},
                    {"itemId": flour.id, "unitPrice": "0", "quantity": "1"},
                ],
            },
        )
        assert res.status_code == 200
        data = res.json()
        assert data["success"] is True
        assert data["updated"] == 1
        assert data["errors"] == []

    def test_draft_payload_is_ignored(self, client, test_supplier, flour):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order",
            json={
                "supplier_id": test_supplier.id,
                "status": "draft",
                "items": [{"inventory_item_id": flour.id, "unit_price": "3.20"}],
            },
        )
        assert res.status_code == 200
        assert res.json()["updated"] == 0

    def test_payload_with_unusable_line_applies_the_rest(self, client, test_supplier, flour, butter):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order",
            json={
                "supplierId": test_supplier.id,
                "status": "sent",
                "items": [
                    {"itemId": flour.id, "unitPrice": ""},
                    {"itemId": butter.id, "unitPrice": "5", "quantity": "abc"},
                ],
            },
        )
        assert res.status_code == 200
        assert res.json()["updated"] == 1

        listing = client.get(f"{API}/supplier-products/supplier/{test_supplier.id}").json()
        assert [e["inventory_item_id"] for e in listing] == [butter.id]

    def test_upper_case_draft_payload_is_ignored(self, client, test_supplier, flour):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order",
            json={
                "supplierId": test_supplier.id,
                "status": "DRAFT",
                "items": [{"itemId": flour.id, "unitPrice": "5"}],
            },
        )
        assert res.status_code == 200
        assert res.json()["updated"] == 0

    def test_unknown_status_payload(self, client, test_supplier, flour):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order",
            json={"supplierId": test_supplier.id, "status": "lost", "items": []},
        )
        assert res.status_code == 422

    def test_payload_without_supplier(self, client):
        res = client.post(
            f"{API}/supplier-products/from-purchase-order", json={"status": "sent", "items": []}
        )
        assert res.status_code == 400

    def test_stored_order_not_found(self, client):
        res = client.post(f"{API}/supplier-products/from-purchase-order/123456")
        assert res.status_code == 404

    def test_rebuild_supplier(self, client, catalog, test_supplier, db_session, make_order, flour):
        make_order(test_supplier, [(flour, 99, 1)], status=POStatus.DRAFT)
        res = client.post(f"{API}/supplier-products/supplier/{test_supplier.id}/rebuild")
        assert res.status_code == 200
        data = res.json()
        assert data["scope"] == "supplier"
        assert data["supplier_id"] == test_supplier.id
        assert data["orders_processed"] == 2
        assert data["updated"] == 3

        listing = client.get(f"{API}/supplier-products/supplier/{test_supplier.id}").json()
        assert Decimal(listing[1]["max_price"]) == Decimal("12")

    def test_rebuild_all(self, client, catalog):
        res = client.post(f"{API}/supplier-products/rebuild")
        assert res.status_code == 200
        data = res.json()
        assert data["scope"] == "all"
        assert data["suppliers_processed"] == 2
        assert data["orders_processed"] == 3
        assert data["updated"] == 4


class TestHealth:

    def test_health(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.json()["status"] == "healthy"

    def test_readiness_reports_app_storage(self, client, storage):
        from supplier_catalog.main import app

        assert app.state.certificate_storage is storage
        res = client.get("/health/ready")
        assert res.status_code == 200
        assert res.json()["checks"] == {"database": "healthy", "certificate_storage": "local"}
