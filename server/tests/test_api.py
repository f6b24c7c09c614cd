"""
HTTP surface tests: routes wired over an in-memory database and a scripted provider.
"""

from typing import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from esign_desk.api.dependencies.database import get_db
from esign_desk.api.dependencies.esign import get_esign_provider
from esign_desk.core.config import clear_settings_cache
from esign_desk.integrations.esign.errors import ConfigurationError, ProviderError
from esign_desk.integrations.esign.provider import CREATE_FLOW, DESCRIBE_FLOW_INFO, DESCRIBE_FLOW_TEMPLATES
from esign_desk.main import create_application
from esign_desk.models import AuditLog, ContractStatus
from esign_desk.services.contract_flow_service import get_contract

from tests.conftest import callback_body, make_contract


@pytest.fixture(autouse=True)
def api_settings(monkeypatch):
    monkeypatch.setenv("TENCENT_SECRET_ID", "AKIDtest")
    monkeypatch.setenv("TENCENT_SECRET_KEY", "test-secret-key")
    monkeypatch.setenv("TENCENT_ESIGN_OPERATOR_ID", "operator-user-1")
    monkeypatch.setenv("SIGN_COMPLETE_JUMP_URL", "https://desk.example.com/signed")
    monkeypatch.setenv("CRON_SECRET", "cron-secret")
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest_asyncio.fixture
async def api_client(session, provider) -> AsyncIterator[AsyncClient]:
    application = create_application()

    async def override_get_db():
        yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_esign_provider] = lambda: provider

    async with AsyncClient(transport=ASGITransport(app=application), base_url="http://testserver") as client:
        yield client

    application.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(api_client):
    response = await api_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["esign_configured"] is True


class TestContractRoutes:
    @pytest.mark.asyncio
    async def test_initiate(self, api_client, session, draft_contract, esign_client):
        response = await api_client.post(
            f"/contracts/{draft_contract.id}/initiate",
            headers={"X-Operator-Id": "user-7"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["flow_id"] == "flow-001"
        assert body["sign_url"] == "https://sign.example.com/s/abc"
        assert body["contract"]["status"] == "PENDING_PARTY_B"
        assert esign_client.payload_for(CREATE_FLOW)["Operator"] == {"UserId": "operator-user-1"}

        logs = await api_client.get(f"/contracts/{draft_contract.id}/status-logs")
        assert logs.status_code == 200
        items = logs.json()["items"]
        assert len(items) == 1
        assert items[0]["from_status"] == "DRAFT"
        assert items[0]["to_status"] == "PENDING_PARTY_B"
        assert items[0]["operator_id"] == "user-7"

    @pytest.mark.asyncio
    async def test_initiate_unknown_contract(self, api_client):
        response = await api_client.post("/contracts/missing/initiate")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "CONTRACT_NOT_FOUND"
        assert response.json()["detail"]["step"] == "INIT"

    @pytest.mark.asyncio
    async def test_initiate_non_draft(self, api_client, session, product):
        contract = await make_contract(session, product, status=ContractStatus.COMPLETED, flow_id="flow-9")

        response = await api_client.post(f"/contracts/{contract.id}/initiate")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_CONTRACT_STATUS"

    @pytest.mark.asyncio
    async def test_initiate_provider_failure(self, api_client, session, draft_contract, esign_client):
        esign_client.failures[CREATE_FLOW] = ProviderError("InvalidParameter.CardNumber", "id mismatch", "req-err")

        response = await api_client.post(f"/contracts/{draft_contract.id}/initiate")

        assert response.status_code == 502
        assert response.json()["detail"] == {
            "code": "InvalidParameter.CardNumber",
            "message": "id mismatch",
            "step": "CreateFlow",
            "request_id": "req-err",
        }
        assert (await get_contract(session, draft_contract.id)).status is ContractStatus.DRAFT

    @pytest.mark.asyncio
    async def test_initiate_without_credentials(self, api_client, draft_contract, esign_client):
        esign_client.failures[CREATE_FLOW] = ConfigurationError("Tencent Cloud API credentials are not configured")

        response = await api_client.post(f"/contracts/{draft_contract.id}/initiate")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "CONFIGURATION_ERROR"

    @pytest.mark.asyncio
    async def test_regenerate_link(self, api_client, session, product):
        contract = await make_contract(session, product, status=ContractStatus.PENDING_PARTY_B, flow_id="flow-10")

        response = await api_client.post(f"/contracts/{contract.id}/regenerate-link")

        assert response.status_code == 200
        assert response.json()["sign_url"] == "https://sign.example.com/s/abc"

    @pytest.mark.asyncio
    async def test_regenerate_link_wrong_status(self, api_client, draft_contract):
        response = await api_client.post(f"/contracts/{draft_contract.id}/regenerate-link")

        assert response.status_code == 400
        assert response.json()["detail"]["step"] == "REGENERATE"

    @pytest.mark.asyncio
    async def test_status_logs_unknown_contract(self, api_client):
        response = await api_client.get("/contracts/missing/status-logs")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_download(self, api_client, session, product):
        contract = await make_contract(session, product, status=ContractStatus.COMPLETED, flow_id="flow-11")

        response = await api_client.get(f"/contracts/{contract.id}/download")

        assert response.status_code == 200
        assert response.json()["url"] == "https://files.example.com/flow-001.pdf"

    @pytest.mark.asyncio
    async def test_download_requires_completed(self, api_client, session, product):
        contract = await make_contract(session, product, status=ContractStatus.PENDING_PARTY_A, flow_id="flow-12")

        response = await api_client.get(f"/contracts/{contract.id}/download")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "CONTRACT_NOT_COMPLETED"


class TestCallbackRoute:
    @pytest.mark.asyncio
    async def test_probe(self, api_client):
        response = await api_client.get("/callback/esign")

        assert response.status_code == 200
        assert response.json()["success"] is True

    @pytest.mark.asyncio
    async def test_signed_callback_is_applied(self, api_client, session, product):
        contract = await make_contract(session, product, status=ContractStatus.PENDING_PARTY_A, flow_id="flow-20")
        body = callback_body(FlowId="flow-20", FlowStatus=2)

        response = await api_client.post(
            "/callback/esign",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["to_status"] == "COMPLETED"
        assert "status_code" not in response.json()
        assert (await get_contract(session, contract.id)).status is ContractStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_bad_signature_is_unauthorized(self, api_client, session):
        body = callback_body("wrong-secret", FlowId="flow-21", FlowStatus=2)

        response = await api_client.post("/callback/esign", content=body)

        assert response.status_code == 401
        assert response.json()["success"] is False
        audits = (await session.execute(select(AuditLog))).scalars().all()
        assert [audit.action for audit in audits] == ["ESIGN_CALLBACK"]


class TestCronRoute:
    @pytest.mark.asyncio
    async def test_requires_secret(self, api_client):
        response = await api_client.post("/cron/sync-status")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_secret(self, api_client):
        response = await api_client.get("/cron/sync-status", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_bearer_secret(self, api_client, session, product, esign_client):
        contract = await make_contract(session, product, status=ContractStatus.PENDING_PARTY_A, flow_id="flow-30")
        esign_client.responses[DESCRIBE_FLOW_INFO] = {"FlowDetailInfos": [{"FlowId": "flow-30", "FlowStatus": 2}]}

        response = await api_client.post("/cron/sync-status", headers={"Authorization": "Bearer cron-secret"})

        assert response.status_code == 200
        assert response.json()["updated"] == 1
        assert (await get_contract(session, contract.id)).status is ContractStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_query_secret(self, api_client):
        response = await api_client.get("/cron/sync-status", params={"secret": "cron-secret"})

        assert response.status_code == 200
        assert response.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_open_when_no_secret_configured(self, api_client, monkeypatch):
        monkeypatch.delenv("CRON_SECRET")
        clear_settings_cache()

        response = await api_client.get("/cron/sync-status")

        assert response.status_code == 200


class TestTemplateRoute:
    @pytest.mark.asyncio
    async def test_fields(self, api_client, esign_client):
        esign_client.responses[DESCRIBE_FLOW_TEMPLATES] = {
            "Templates": [
                {
                    "TemplateId": "tpl-001",
                    "TemplateName": "Equipment Lease",
                    "Components": [
                        {"ComponentId": "c1", "ComponentName": "monthly_rent", "ComponentType": "NUMBER"},
                        {"ComponentId": "c2", "ComponentName": "party_b_seal", "ComponentType": "SIGN_SIGNATURE"},
                    ],
                }
            ]
        }

        response = await api_client.get("/templates/tpl-001/fields")

        assert response.status_code == 200
        fields = response.json()["fields"]
        assert [field["name"] for field in fields] == ["monthly_rent"]
        assert fields[0]["type"] == "number"

    @pytest.mark.asyncio
    async def test_unknown_template(self, api_client, esign_client):
        esign_client.responses[DESCRIBE_FLOW_TEMPLATES] = {"Templates": []}

        response = await api_client.get("/templates/tpl-404/fields")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ResourceNotFound.Template"

    @pytest.mark.asyncio
    async def test_provider_failure(self, api_client, esign_client):
        esign_client.failures[DESCRIBE_FLOW_TEMPLATES] = ProviderError("InternalError", "boom", "req-t")

        response = await api_client.get("/templates/tpl-001/fields")

        assert response.status_code == 502
