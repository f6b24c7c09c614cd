"""
Shared test configuration and fixtures for the E-Sign Desk test suite.
"""

import hashlib
import hmac
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from esign_desk.core.config import Settings
from esign_desk.db.base import Base
from esign_desk.integrations.esign.provider import (
    CREATE_DOCUMENT,
    CREATE_FLOW,
    CREATE_FLOW_SIGN_URL,
    DESCRIBE_FILE_URLS,
    DESCRIBE_FLOW_INFO,
    DESCRIBE_FLOW_TEMPLATES,
    START_FLOW,
    TencentEsignProvider,
)
from esign_desk.integrations.esign.signer import serialize_payload
from esign_desk.models import Contract, ContractStatus, PartyType, Product

SIGN_URL_EXPIRE_TIME = 1_893_456_000  # 2030-01-01T00:00:00Z
CALLBACK_SECRET = "test-secret-key"


class ScriptedEsignClient:
    """Stands in for ``EsignClient``: answers each action from a script and records every call."""

    def __init__(
        self,
        responses: Optional[Dict[str, Dict[str, Any]]] = None,
        failures: Optional[Dict[str, Exception]] = None,
    ):
        self.responses: Dict[str, Dict[str, Any]] = {
            CREATE_FLOW: {"FlowId": "flow-001"},
            CREATE_DOCUMENT: {"DocumentId": "doc-001"},
            START_FLOW: {"Status": "OK"},
            CREATE_FLOW_SIGN_URL: {
                "FlowApproverUrlInfos": [
                    {
                        "SignUrl": "https://sign.example.com/s/abc",
                        "ApproverType": 1,
                        "ApproverName": "Bob Tenant",
                        "ApproverMobile": "13900000000",
                        "SignUrlExpireTime": SIGN_URL_EXPIRE_TIME,
                    }
                ]
            },
            DESCRIBE_FLOW_INFO: {
                "FlowDetailInfos": [{"FlowId": "flow-001", "FlowStatus": 1, "FlowApproverInfos": []}]
            },
            DESCRIBE_FLOW_TEMPLATES: {"Templates": [{"TemplateId": "tpl-001", "TemplateName": "Lease", "Components": []}]},
            DESCRIBE_FILE_URLS: {"FileUrls": [{"Url": "https://files.example.com/flow-001.pdf", "ExpiredTime": 1_893_456_000}]},
        }
        self.responses.update(responses or {})
        self.failures: Dict[str, Exception] = dict(failures or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.closed = False

    @property
    def actions(self) -> List[str]:
        return [action for action, _ in self.calls]

    def payload_for(self, action: str) -> Dict[str, Any]:
        return next(payload for called, payload in self.calls if called == action)

    async def call(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((action, payload))
        if action in self.failures:
            raise self.failures[action]
        return {"RequestId": f"req-{len(self.calls)}", **self.responses[action]}

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        tencent_secret_id="AKIDtest",
        tencent_secret_key="test-secret-key",
        tencent_esign_operator_id="operator-user-1",
        party_a_org_name="Acme Leasing Co",
        party_a_signer_name="Alice Operator",
        party_a_signer_mobile="13800000000",
        sign_complete_jump_url="https://desk.example.com/signed",
        cron_secret="cron-secret",
    )


@pytest.fixture
def esign_client() -> ScriptedEsignClient:
    return ScriptedEsignClient()


@pytest.fixture
def provider(esign_client: ScriptedEsignClient) -> TencentEsignProvider:
    return TencentEsignProvider(esign_client, "operator-user-1")  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def product(session: AsyncSession) -> Product:
    product = Product(
        name="Equipment Lease",
        template_id="tpl-001",
        form_fields={
            "initiatorFields": [
                {"name": "monthly_rent", "label": "Monthly rent", "type": "number", "filler": "INITIATOR", "required": True},
                {"name": "start_date", "label": "Start date", "type": "date", "filler": "INITIATOR", "required": True},
                {"name": "remarks", "label": "Remarks", "type": "text", "filler": "INITIATOR", "required": False},
            ],
            "signerFields": [
                {"name": "bank_account", "label": "Bank account", "type": "text", "filler": "SIGNER", "required": True},
            ],
        },
    )
    session.add(product)
    await session.commit()
    return product


async def make_contract(
    session: AsyncSession,
    product: Product,
    *,
    contract_no: str = "HT-2024-0001",
    status: ContractStatus = ContractStatus.DRAFT,
    flow_id: Optional[str] = None,
    party_b_type: PartyType = PartyType.PERSONAL,
    party_b_org_name: Optional[str] = None,
    form_data: Optional[Dict[str, Any]] = None,
) -> Contract:
    contract = Contract(
        contract_no=contract_no,
        status=status,
        product_id=product.id,
        flow_id=flow_id,
        party_b_name="Bob Tenant",
        party_b_phone="13900000000",
        party_b_id_card="110101199001011234",
        party_b_type=party_b_type,
        party_b_org_name=party_b_org_name,
        form_data=form_data if form_data is not None else {"monthly_rent": 1200, "start_date": "2024-03-01", "remarks": ""},
    )
    session.add(contract)
    await session.commit()
    return contract


@pytest_asyncio.fixture
async def draft_contract(session: AsyncSession, product: Product) -> Contract:
    return await make_contract(session, product)


def callback_body(secret: str = CALLBACK_SECRET, *, timestamp: Optional[int] = None, **fields: Any) -> str:
    """Raw callback body signed the way the provider signs it: HMAC over the payload minus ``Sign``."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    payload = {"Timestamp": timestamp, **fields}
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}\n{serialize_payload(payload)}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return json.dumps({**payload, "Sign": signature})
