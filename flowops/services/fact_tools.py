"""Account and billing fact sources.

Tools never raise for expected failures: they return ``ToolOk`` or
``ToolErr`` so the orchestrator can escalate instead of erroring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Generic, Protocol, TypeVar

import httpx

from flowops.core.config import settings
from flowops.services.http_service import request_with_retries, safe_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

CUSTOMER_ID_REQUIRED = "customer_id is required"


@dataclass(frozen=True)
class ToolOk(Generic[T]):
    data: T
    ok: bool = True


@dataclass(frozen=True)
class ToolErr:
    error: str
    ok: bool = False


@dataclass(frozen=True)
class AccountStatus:
    plan: str
    api_key_status: str
    sla_hours: int
    email: str


@dataclass(frozen=True)
class BillingSummary:
    last_invoice_id: str
    last_invoice_amount: float
    invoice_status: str
    refundable_amount: float


class FactSource(Protocol):
    async def get_account_status(
        self, customer_id: str
    ) -> ToolOk[AccountStatus] | ToolErr: ...

    async def get_billing_summary(
        self, customer_id: str
    ) -> ToolOk[BillingSummary] | ToolErr: ...


DEFAULT_ACCOUNT = AccountStatus(
    plan="pro",
    api_key_status="expired",
    sla_hours=24,
    email="customer@example.com",
)

DEFAULT_BILLING = BillingSummary(
    last_invoice_id="inv_123",
    last_invoice_amount=49,
    invoice_status="paid",
    refundable_amount=49,
)


@dataclass
class StaticFactSource:
    """In-process fact source for development and tests.

    Every customer gets the defaults unless an override is registered.
    """

    account: AccountStatus = DEFAULT_ACCOUNT
    billing: BillingSummary = DEFAULT_BILLING
    account_overrides: dict[str, AccountStatus] = field(default_factory=dict)
    billing_overrides: dict[str, BillingSummary] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)

    def set_plan(self, customer_id: str, plan: str) -> None:
        base = self.account_overrides.get(customer_id, self.account)
        self.account_overrides[customer_id] = replace(base, plan=plan)

    async def get_account_status(self, customer_id: str) -> ToolOk[AccountStatus] | ToolErr:
        if not customer_id:
            return ToolErr(CUSTOMER_ID_REQUIRED)
        if customer_id in self.failures:
            return ToolErr(self.failures[customer_id])
        return ToolOk(self.account_overrides.get(customer_id, self.account))

    async def get_billing_summary(self, customer_id: str) -> ToolOk[BillingSummary] | ToolErr:
        if not customer_id:
            return ToolErr(CUSTOMER_ID_REQUIRED)
        if customer_id in self.failures:
            return ToolErr(self.failures[customer_id])
        return ToolOk(self.billing_overrides.get(customer_id, self.billing))


class HttpFactSource:
    """Fact source backed by an internal accounts/billing HTTP API.

    Expects ``GET {base}/customers/{id}/account`` and ``.../billing`` returning
    snake_case JSON objects.
    """

    def __init__(self, base_url: str, timeout: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or settings.FACTS_TIMEOUT_SECONDS

    async def _fetch(self, customer_id: str, resource: str) -> dict | ToolErr:
        url = f"{self.base_url}/customers/{customer_id}/{resource}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await request_with_retries(lambda: client.get(url))
        except httpx.HTTPError as exc:
            logger.warning("Fact fetch failed: %s (%s)", safe_url(url), type(exc).__name__)
            return ToolErr(f"{resource} lookup failed: {type(exc).__name__}")

        if response.status_code >= 400:
            logger.warning("Fact fetch returned %s: %s", response.status_code, safe_url(url))
            return ToolErr(f"{resource} lookup failed: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            return ToolErr(f"{resource} lookup returned invalid JSON")
        if not isinstance(data, dict):
            return ToolErr(f"{resource} lookup returned invalid JSON")
        return data

    async def get_account_status(self, customer_id: str) -> ToolOk[AccountStatus] | ToolErr:
        if not customer_id:
            return ToolErr(CUSTOMER_ID_REQUIRED)
        data = await self._fetch(customer_id, "account")
        if isinstance(data, ToolErr):
            return data
        try:
            return ToolOk(
                AccountStatus(
                    plan=str(data["plan"]),
                    api_key_status=str(data["api_key_status"]),
                    sla_hours=int(data.get("sla_hours", 24)),
                    email=str(data["email"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            return ToolErr("account lookup returned incomplete data")

    async def get_billing_summary(self, customer_id: str) -> ToolOk[BillingSummary] | ToolErr:
        if not customer_id:
            return ToolErr(CUSTOMER_ID_REQUIRED)
        data = await self._fetch(customer_id, "billing")
        if isinstance(data, ToolErr):
            return data
        try:
            return ToolOk(
                BillingSummary(
                    last_invoice_id=str(data["last_invoice_id"]),
                    last_invoice_amount=float(data["last_invoice_amount"]),
                    invoice_status=str(data["invoice_status"]),
                    refundable_amount=float(data["refundable_amount"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            return ToolErr("billing lookup returned incomplete data")


_default_source: FactSource | None = None


def get_fact_source() -> FactSource:
    """Return the configured fact source (HTTP when FACTS_API_URL is set)."""
    global _default_source
    if _default_source is None:
        if settings.FACTS_API_URL:
            _default_source = HttpFactSource(settings.FACTS_API_URL)
        else:
            _default_source = StaticFactSource()
    return _default_source


def set_fact_source(source: FactSource | None) -> None:
    """Override the process-wide fact source (tests, alternative backends)."""
    global _default_source
    _default_source = source
