"""
HTTP-level tests for the routers (services mocked via dependency_overrides).
"""
import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from solarsign.config import Settings, get_settings
from solarsign.main import app
from solarsign.services.digital_signature import (
    SigningResult,
    VerificationResult,
    get_digital_signature_service,
)
from solarsign.services.workflow import WorkflowResult, get_workflow_service

SECRET = "s3cret"


@pytest.fixture
def api_settings(temp_dir):
    documents = os.path.join(temp_dir, "documents")
    os.makedirs(documents, exist_ok=True)
    return Settings(
        ENVIRONMENT="test",
        INTERNAL_API_SECRET=SECRET,
        DOCUSEAL_API_KEY="test-api-key",
        DOCUMENTS_ROOT=documents,
        TEMP_DIR=os.path.join(temp_dir, "work"),
    )


@pytest.fixture
def signature_service():
    service = MagicMock()
    service.sign_pdf_with_digital_footprint = AsyncMock()
    service.verify_signature = AsyncMock()
    service.get_signature_history = AsyncMock(return_value=[])
    return service


@pytest.fixture
def workflow_service():
    service = MagicMock()
    service.create_contract_and_booking_confirmation_workflow = AsyncMock()
    service.prepare_contract_template = AsyncMock()
    service.submit_prepared_template = AsyncMock()
    service.create_disclaimer_workflow = AsyncMock()
    service.create_booking_confirmation_workflow = AsyncMock()
    service.sign_contract_locally = AsyncMock()
    return service


@pytest.fixture
def client(api_settings, signature_service, workflow_service):
    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_digital_signature_service] = lambda: signature_service
    app.dependency_overrides[get_workflow_service] = lambda: workflow_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"X-Internal-Secret": SECRET}


@pytest.fixture
def sign_body(footprint_payload):
    return {
        "pdfPath": "contracts/OPP-1.pdf",
        "signatureData": "data:image/png;base64,iVBORw0KGgo=",
        "digitalFootprint": footprint_payload,
        "opportunityId": "OPP-1",
        "signedBy": "Jane Smith",
    }


@pytest.fixture
def contract_body():
    return {
        "contractPdfPath": "contracts/OPP-1.pdf",
        "bookingConfirmationPdfPath": "booking/OPP-1.pdf",
        "opportunityId": "OPP-1",
        "customer": {"name": "Jane Smith", "email": "jane@example.com"},
    }


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "environment": "test"}

    def test_health_is_public(self, client):
        assert client.get("/health/dependencies").status_code == 200

    def test_dependencies_report(self, client):
        body = client.get("/health/dependencies").json()
        assert body["docuseal_configured"] is True
        assert body["documents_root_exists"] is True
        assert body["metadata_store_backend"] == "file"
        assert body["stamp_font"]

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestInternalSecret:

    def test_missing_secret(self, client, sign_body, signature_service):
        response = client.post("/digital-signature/sign-pdf", json=sign_body)
        assert response.status_code == 401
        assert response.json()["code"] == "MISSING_SECRET"
        signature_service.sign_pdf_with_digital_footprint.assert_not_called()

    def test_wrong_secret(self, client, sign_body):
        response = client.post(
            "/digital-signature/sign-pdf",
            json=sign_body,
            headers={"X-Internal-Secret": "nope"},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "INVALID_SECRET"

    def test_workflows_protected(self, client, contract_body):
        assert client.post("/v1/workflows/contract", json=contract_body).status_code == 401

    def test_disabled_when_unset(self, client, api_settings, sign_body, signature_service):
        open_settings = api_settings.model_copy(update={"internal_api_secret": ""})
        app.dependency_overrides[get_settings] = lambda: open_settings
        signature_service.sign_pdf_with_digital_footprint.return_value = SigningResult(
            success=True, message="signed"
        )
        assert client.post("/digital-signature/sign-pdf", json=sign_body).status_code == 200


class TestSignPdf:

    def test_success(self, client, auth, sign_body, api_settings, signature_service):
        signature_service.sign_pdf_with_digital_footprint.return_value = SigningResult(
            success=True, message="PDF signed successfully"
        )

        response = client.post("/digital-signature/sign-pdf", json=sign_body, headers=auth)

        assert response.status_code == 200
        assert response.json()["success"] is True
        kwargs = signature_service.sign_pdf_with_digital_footprint.call_args.kwargs
        expected = os.path.join(os.path.realpath(api_settings.documents_root), "contracts", "OPP-1.pdf")
        assert kwargs["pdf_path"] == expected
        assert kwargs["opportunity_id"] == "OPP-1"
        assert kwargs["page_numbers"] is None
        assert kwargs["digital_footprint"].signature_data.duration_ms == 2315

    def test_path_outside_documents_root(self, client, auth, sign_body, signature_service):
        sign_body["pdfPath"] = "../../etc/secret.pdf"

        response = client.post("/digital-signature/sign-pdf", json=sign_body, headers=auth)

        assert response.status_code == 403
        assert response.json()["code"] == "PATH_NOT_ALLOWED"
        signature_service.sign_pdf_with_digital_footprint.assert_not_called()

    @pytest.mark.parametrize("code,status", [
        ("PAGE_INDEX_OUT_OF_RANGE", 400),
        ("SOURCE_NOT_FOUND", 404),
        ("MALFORMED_DOCUMENT", 422),
    ])
    def test_failure_status(self, client, auth, sign_body, signature_service, code, status):
        signature_service.sign_pdf_with_digital_footprint.return_value = SigningResult(
            success=False, message="Failed to sign PDF", error="details", code=code
        )

        response = client.post("/digital-signature/sign-pdf", json=sign_body, headers=auth)

        assert response.status_code == status
        body = response.json()
        assert body["success"] is False
        assert body["code"] == code

    def test_non_pdf_path_rejected(self, client, auth, sign_body):
        sign_body["pdfPath"] = "contracts/OPP-1.docx"

        response = client.post("/digital-signature/sign-pdf", json=sign_body, headers=auth)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] is True
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"]["errors"]

    def test_zero_page_number_rejected(self, client, auth, sign_body):
        sign_body["pageNumbers"] = [0, 6]
        response = client.post("/digital-signature/sign-pdf", json=sign_body, headers=auth)
        assert response.status_code == 422


class TestVerifyAndHistory:

    def test_verify_unknown(self, client, auth, signature_service):
        signature_service.verify_signature.return_value = VerificationResult(
            success=False, is_valid=False, error="Signature not found"
        )

        response = client.get("/digital-signature/verify/SIG_1_abc", headers=auth)

        assert response.status_code == 404
        assert response.json()["isValid"] is False
        signature_service.verify_signature.assert_awaited_once_with("SIG_1_abc", None)

    def test_verify_with_pdf_path(self, client, auth, api_settings, signature_service):
        signature_service.verify_signature.return_value = VerificationResult(success=True, is_valid=True)

        response = client.get(
            "/digital-signature/verify/SIG_1_abc",
            params={"pdfPath": "signed/OPP-1.pdf"},
            headers=auth,
        )

        assert response.status_code == 200
        assert response.json()["isValid"] is True
        expected = os.path.join(os.path.realpath(api_settings.documents_root), "signed", "OPP-1.pdf")
        signature_service.verify_signature.assert_awaited_once_with("SIG_1_abc", expected)

    def test_history(self, client, auth, signature_service):
        response = client.get("/digital-signature/history/OPP-1", headers=auth)

        assert response.status_code == 200
        assert response.json()["signatures"] == []
        signature_service.get_signature_history.assert_awaited_once_with("OPP-1")


class TestWorkflowRoutes:

    def test_contract_success(self, client, auth, contract_body, workflow_service):
        workflow_service.create_contract_and_booking_confirmation_workflow.return_value = WorkflowResult(
            success=True,
            message="Contract sent for signing",
            template_id=101,
            submission_id=55,
            signing_url="https://docuseal.com/s/abc",
            total_pages=24,
        )

        response = client.post("/v1/workflows/contract", json=contract_body, headers=auth)

        assert response.status_code == 200
        body = response.json()
        assert body["templateId"] == 101
        assert body["submissionId"] == 55
        assert body["signingUrl"] == "https://docuseal.com/s/abc"
        assert body["totalPages"] == 24
        assert body["unvalidatedPageCount"] is False
        kwargs = workflow_service.create_contract_and_booking_confirmation_workflow.call_args.kwargs
        assert kwargs["customer"].email == "jane@example.com"
        assert kwargs["calculator_type"].value == "flux"

    def test_in_progress_is_conflict(self, client, auth, contract_body, workflow_service):
        workflow_service.create_contract_and_booking_confirmation_workflow.return_value = WorkflowResult(
            success=False, message="A contract workflow is already running", code="WORKFLOW_IN_PROGRESS"
        )

        response = client.post("/v1/workflows/contract", json=contract_body, headers=auth)

        assert response.status_code == 409
        assert response.json()["code"] == "WORKFLOW_IN_PROGRESS"

    def test_vendor_failure_is_bad_gateway(self, client, auth, contract_body, workflow_service):
        workflow_service.create_contract_and_booking_confirmation_workflow.return_value = WorkflowResult(
            success=False, message="Failed", error="DocuSeal API error: 500", code="SIGNING_SERVICE_ERROR"
        )
        response = client.post("/v1/workflows/contract", json=contract_body, headers=auth)
        assert response.status_code == 502

    def test_submit_without_prepare(self, client, auth, workflow_service):
        workflow_service.submit_prepared_template.return_value = WorkflowResult(
            success=False, message="No prepared template", code="TEMPLATE_NOT_FOUND"
        )

        response = client.post(
            "/v1/workflows/contract/submit",
            json={"opportunityId": "OPP-1", "customer": {"name": "Jane Smith", "email": "jane@example.com"}},
            headers=auth,
        )

        assert response.status_code == 404

    def test_booking_path_traversal(self, client, auth, workflow_service):
        response = client.post(
            "/v1/workflows/booking-confirmation",
            json={
                "bookingConfirmationPdfPath": "/etc/passwd.pdf",
                "opportunityId": "OPP-1",
                "customer": {"name": "Jane Smith", "email": "jane@example.com"},
            },
            headers=auth,
        )

        assert response.status_code == 403
        workflow_service.create_booking_confirmation_workflow.assert_not_called()

    def test_disclaimer_passes_values(self, client, auth, workflow_service):
        workflow_service.create_disclaimer_workflow.return_value = WorkflowResult(
            success=True, message="Disclaimer sent for signing", template_id=7
        )

        response = client.post(
            "/v1/workflows/disclaimer",
            json={
                "disclaimerPdfPath": "disclaimers/OPP-1.pdf",
                "opportunityId": "OPP-1",
                "customer": {"name": "Jane Smith", "email": "jane@example.com"},
                "installerName": "Sun Fitters Ltd",
                "values": {"system_size": "4.2 kWp"},
            },
            headers=auth,
        )

        assert response.status_code == 200
        kwargs = workflow_service.create_disclaimer_workflow.call_args.kwargs
        assert kwargs["installer_name"] == "Sun Fitters Ltd"
        assert kwargs["values"] == {"system_size": "4.2 kWp"}

    def test_missing_customer_rejected(self, client, auth, contract_body):
        del contract_body["customer"]

        response = client.post("/v1/workflows/contract", json=contract_body, headers=auth)

        assert response.status_code == 422
        fields = [e["field"] for e in response.json()["details"]["errors"]]
        assert any("customer" in f for f in fields)

    def test_local_sign(self, client, auth, contract_body, footprint_payload, workflow_service):
        workflow_service.sign_contract_locally.return_value = WorkflowResult(
            success=True, message="Contract signed", total_pages=25, signature_id="SIG_1_abc"
        )
        body = {
            **contract_body,
            "signedBy": "Jane Smith",
            "signatureData": "data:image/png;base64,iVBORw0KGgo=",
            "digitalFootprint": footprint_payload,
        }
        del body["customer"]

        response = client.post("/v1/workflows/contract/local-sign", json=body, headers=auth)

        assert response.status_code == 200
        assert response.json()["signatureId"] == "SIG_1_abc"
