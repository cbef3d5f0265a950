"""Tests for certificate information and certificate file attachments."""

import pytest
from datetime import date

from supplier_catalog.core.file_guardrails import (
    FileRejectedError,
    is_pdf_file,
    sanitize_filename,
    validate_certificate_upload,
)
from supplier_catalog.models.supplier_product import CertificateType
from supplier_catalog.services.certificate_storage import CertificateStorage, CertificateStorageError
from supplier_catalog.services.supplier_product_repository import SupplierProductRepository
from supplier_catalog.services.supplier_product_service import (
    CatalogEntryNotFoundError,
    CatalogValidationError,
    build_certificate_object_name,
    delete_certificate_file,
    get_certificate_file,
    get_expiring_certificates,
    update_catalog_from_purchase_order,
    update_product_certificate,
    upload_certificate_file,
)


class FailingDeleteStorage(CertificateStorage):
    """Storage whose deletes always fail."""

    def delete(self, object_name: str) -> bool:
        raise CertificateStorageError("storage unreachable")


class FailingUploadStorage(CertificateStorage):

    def upload(self, object_name, data, content_type="application/pdf"):
        raise CertificateStorageError("bucket is read-only")


@pytest.fixture
def entry(db_session, make_order, test_supplier, flour):
    update_catalog_from_purchase_order(db_session, make_order(test_supplier, [(flour, 10, 5)]))
    return SupplierProductRepository(db_session).find_by_key(test_supplier.id, flour.id)


# ============== Guardrails ==============

class TestGuardrails:

    def test_empty_file(self):
        with pytest.raises(FileRejectedError) as exc:
            validate_certificate_upload("a.pdf", "application/pdf", b"", 1024)
        assert exc.value.status_code == 400

    def test_oversized_file(self, pdf_bytes):
        with pytest.raises(FileRejectedError) as exc:
            validate_certificate_upload("a.pdf", "application/pdf", pdf_bytes, 10)
        assert exc.value.status_code == 413

    @pytest.mark.parametrize(
        "filename,content_type,data",
        [
            ("scan.png", "application/pdf", b"%PDF-1.4"),
            ("scan.pdf", "image/png", b"%PDF-1.4"),
            ("scan.pdf", "application/pdf", b"\x89PNG\r\n"),
            (None, "application/pdf", b"%PDF-1.4"),
        ],
    )
    def test_non_pdf_is_rejected(self, filename, content_type, data):
        with pytest.raises(FileRejectedError) as exc:
            validate_certificate_upload(filename, content_type, data, 1024)
        assert exc.value.status_code == 415

    def test_pdf_with_charset_parameter(self, pdf_bytes):
        assert is_pdf_file("CERT.PDF", "application/pdf; charset=binary", pdf_bytes)

    def test_sanitize_filename(self):
        assert sanitize_filename("C:\\Users\\anna\\certyfikat eko 2026.pdf") == "certyfikat_eko_2026.pdf"
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("") == "unnamed"
        assert sanitize_filename("???.pdf") == "file.pdf"


# ============== Certificate information ==============

class TestCertificateInfo:

    def test_update_writes_only_certificate_fields(self, db_session, entry):
        before = (entry.last_price, entry.average_price, entry.order_count)

        updated = update_product_certificate(
            db_session,
            entry.id,
            {"certificate_type": "halal", "certificate_number": "  HAL/22/881 "},
        )

        assert updated.certificate_type == CertificateType.HALAL
        assert updated.certificate_number == "HAL/22/881"
        assert (updated.last_price, updated.average_price, updated.order_count) == before

    def test_statistic_fields_are_rejected(self, db_session, entry):
        with pytest.raises(CatalogValidationError):
            update_product_certificate(db_session, entry.id, {"last_price": 1})

    def test_unknown_certificate_type(self, db_session, entry):
        with pytest.raises(CatalogValidationError):
            update_product_certificate(db_session, entry.id, {"certificate_type": "organic"})

    def test_validity_range_checked_against_stored_dates(self, db_session, entry):
        update_product_certificate(db_session, entry.id, {"certificate_valid_from": date(2026, 5, 1)})
        with pytest.raises(CatalogValidationError):
            update_product_certificate(db_session, entry.id, {"certificate_valid_to": date(2026, 4, 30)})

    def test_missing_entry(self, db_session):
        with pytest.raises(CatalogEntryNotFoundError):
            update_product_certificate(db_session, 31337, {"certificate_number": "X"})

    def test_expiring_certificates(self, db_session, entry):
        update_product_certificate(
            db_session, entry.id, {"certificate_type": "eco", "certificate_valid_to": date(2026, 11, 1)}
        )

        soon = get_expiring_certificates(db_session, days=30, today=date(2026, 10, 18))
        later = get_expiring_certificates(db_session, days=7, today=date(2026, 10, 18))

        assert [c["id"] for c in soon] == [entry.id]
        assert soon[0]["days_until_expiry"] == 14
        assert later == []


# ============== Certificate files ==============

class TestCertificateFiles:

    def test_object_name_layout(self):
        name = build_certificate_object_name(3, 17, "Eko cert.pdf")
        namespace, supplier, entry_id, filename = name.split("/")
        assert namespace == "supplier-product-certificates"
        assert (supplier, entry_id) == ("3", "17")
        assert filename.endswith("_Eko_cert.pdf")

    def test_upload_attaches_file(self, db_session, storage, test_supplier, entry, pdf_bytes):
        updated = upload_certificate_file(
            db_session, storage, test_supplier.id, entry.id, "eko.pdf", "application/pdf", pdf_bytes
        )

        assert updated.certificate_file_name == "eko.pdf"
        assert updated.certificate_content_type == "application/pdf"
        assert updated.certificate_storage_path.startswith(
            f"supplier-product-certificates/{test_supplier.id}/{entry.id}/"
        )
        assert updated.certificate_file_url == f"/api/v1/supplier-products/{entry.id}/certificate/file"
        assert updated.certificate_uploaded_at is not None
        assert storage.download(updated.certificate_storage_path) == pdf_bytes

        loaded, data = get_certificate_file(db_session, storage, entry.id)
        assert loaded.id == entry.id
        assert data == pdf_bytes

    def test_replacing_file_removes_previous_object(self, db_session, storage, test_supplier, entry, pdf_bytes):
        first = upload_certificate_file(
            db_session, storage, test_supplier.id, entry.id, "v1.pdf", "application/pdf", pdf_bytes
        ).certificate_storage_path
        second = upload_certificate_file(
            db_session, storage, test_supplier.id, entry.id, "v2.pdf", "application/pdf", pdf_bytes + b"%v2"
        ).certificate_storage_path

        assert first != second
        assert storage.download(first) is None
        assert storage.download(second) == pdf_bytes + b"%v2"

    def test_upload_for_other_supplier_is_not_found(
        self, db_session, storage, other_supplier, entry, pdf_bytes
    ):
        with pytest.raises(CatalogEntryNotFoundError):
            upload_certificate_file(
                db_session, storage, other_supplier.id, entry.id, "eko.pdf", "application/pdf", pdf_bytes
            )

    def test_rejected_file_is_not_stored(self, db_session, storage, test_supplier, entry):
        with pytest.raises(FileRejectedError):
            upload_certificate_file(
                db_session, storage, test_supplier.id, entry.id, "photo.jpg", "image/jpeg", b"\xff\xd8\xff"
            )
        db_session.refresh(entry)
        assert entry.certificate_storage_path is None

    def test_storage_failure_leaves_entry_unchanged(self, db_session, tmp_path, test_supplier, entry, pdf_bytes):
        failing = FailingUploadStorage(local_dir=str(tmp_path / "ro"), connect=False)
        with pytest.raises(CertificateStorageError):
            upload_certificate_file(
                db_session, failing, test_supplier.id, entry.id, "eko.pdf", "application/pdf", pdf_bytes
            )
        db_session.refresh(entry)
        assert entry.certificate_file_name is None

    def test_delete_clears_file_fields_only(self, db_session, storage, test_supplier, entry, pdf_bytes):
        update_product_certificate(db_session, entry.id, {"certificate_number": "EKO-1"})
        path = upload_certificate_file(
            db_session, storage, test_supplier.id, entry.id, "eko.pdf", "application/pdf", pdf_bytes
        ).certificate_storage_path

        updated = delete_certificate_file(db_session, storage, entry.id)

        assert updated.certificate_file_name is None
        assert updated.certificate_storage_path is None
        assert updated.certificate_file_url is None
        assert updated.certificate_uploaded_at is None
        assert updated.certificate_number == "EKO-1"
        assert storage.download(path) is None

    def test_delete_clears_fields_when_storage_fails(
        self, db_session, storage, tmp_path, test_supplier, entry, pdf_bytes
    ):
        upload_certificate_file(
            db_session, storage, test_supplier.id, entry.id, "eko.pdf", "application/pdf", pdf_bytes
        )
        failing = FailingDeleteStorage(local_dir=str(tmp_path / "certificates"), connect=False)

        updated = delete_certificate_file(db_session, failing, entry.id)

        assert updated.certificate_storage_path is None
        assert updated.certificate_file_name is None

    def test_download_without_file(self, db_session, storage, entry):
        with pytest.raises(CatalogEntryNotFoundError):
            get_certificate_file(db_session, storage, entry.id)

    def test_storage_rejects_escaping_names(self, storage):
        with pytest.raises(CertificateStorageError):
            storage.upload("../outside.pdf", b"%PDF")
