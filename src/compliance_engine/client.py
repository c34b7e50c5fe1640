"""
ComplianceClient SDK: sync client for Compliance-Engine.

Used by the order/delivery workflow, runner apps and admin tools to initialize
checklists, record verifications and ask whether a delivery may complete.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx


@dataclass
class ClientCheck:
    """Compliance check returned by the SDK."""

    id: str
    check_type: str
    status: str
    blocks_delivery: bool
    order_id: str = ""
    delivery_id: str = ""
    failure_reason: Optional[str] = None
    override_reason: Optional[str] = None
    verified_by: Optional[str] = None
    verification_method: Optional[str] = None
    version: int = 0
    check_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ClientGate:
    """Gate decision returned by the SDK."""

    can_complete: bool
    blocking_checks: list[str] = field(default_factory=list)
    all_passed: bool = False


@dataclass
class ClientResult:
    """Outcome of any SDK call that changes or reads checks."""

    success: bool
    code: str = ""
    message: str = ""
    checks: list[ClientCheck] = field(default_factory=list)
    gate: Optional[ClientGate] = None

    @property
    def check(self) -> Optional[ClientCheck]:
        return self.checks[0] if self.checks else None


def _actor(actor_id: str, actor_type: str, permissions: list[str] | None) -> dict[str, Any]:
    return {
        "actor_id": actor_id,
        "actor_type": actor_type,
        "permissions": permissions or [],
    }


class ComplianceClient:
    """
    Synchronous HTTP client for Compliance-Engine.

    Transient failures (timeouts, 5xx, 429) are retried with exponential
    backoff. Retrying a write is safe: a verification that already landed is
    answered with CONFLICT instead of being applied twice.
    """

    def __init__(
        self,
        server_url: str = "http://localhost:8080",
        api_key: Optional[str] = None,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_base: float = 0.5,
    ):
        self.server_url = server_url.rstrip("/")
        self.api_key = api_key
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self._http = httpx.Client(
            base_url=self.server_url,
            timeout=timeout,
        )

    def _headers(self) -> dict[str, str]:
        headers = {}
        if self.api_key:
            headers["X-Compliance-Api-Key"] = self.api_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        """Central HTTP method with retry and structured error handling.

        Retries on:
        - httpx.TimeoutException / transport errors
        - 5xx status codes
        - 429 (rate limit)

        No retry on other 4xx errors; their error code is passed through.

        Returns parsed JSON on success, or structured error dict on failure.
        """
        last_error = None
        for attempt in range(self.max_retries):
            try:
                resp = self._http.request(method, path, headers=self._headers(), **kwargs)
                if resp.status_code >= 500 or resp.status_code == 429:
                    last_error = f"HTTP {resp.status_code}"
                    if attempt < self.max_retries - 1:
                        time.sleep(self.retry_backoff_base * (2 ** attempt))
                        continue
                    return {
                        "error": f"Server error: {resp.status_code}",
                        "code": "SERVER_ERROR",
                    }
                if resp.status_code >= 400:
                    return self._client_error(resp)
                return resp.json()
            except httpx.TimeoutException:
                last_error = "timeout"
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except httpx.HTTPError as e:
                last_error = str(e)
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_backoff_base * (2 ** attempt))
                    continue
            except json.JSONDecodeError:
                return {"error": "Invalid JSON response", "code": "JSON_ERROR"}

        return {"error": f"All {self.max_retries} retries exhausted: {last_error}", "code": "CONNECTION_ERROR"}

    @staticmethod
    def _client_error(resp: httpx.Response) -> dict[str, Any]:
        try:
            detail = resp.json().get("detail")
        except (json.JSONDecodeError, AttributeError):
            detail = None
        if isinstance(detail, dict) and "code" in detail:
            return {"error": detail.get("detail", ""), "code": detail["code"]}
        return {
            "error": f"Client error: {resp.status_code}",
            "code": "CLIENT_ERROR",
        }

    @staticmethod
    def _parse_check(data: dict) -> ClientCheck:
        return ClientCheck(
            id=data.get("id", ""),
            check_type=data.get("check_type", ""),
            status=data.get("status", ""),
            blocks_delivery=data.get("blocks_delivery", True),
            order_id=data.get("order_id", ""),
            delivery_id=data.get("delivery_id", ""),
            failure_reason=data.get("failure_reason"),
            override_reason=data.get("override_reason"),
            verified_by=data.get("verified_by"),
            verification_method=data.get("verification_method"),
            version=data.get("version", 0),
            check_data=data.get("check_data", {}),
        )

    @staticmethod
    def _parse_gate(data: dict) -> ClientGate:
        return ClientGate(
            can_complete=data.get("can_complete", False),
            blocking_checks=[c.get("check_type", "") for c in data.get("blocking_checks", [])],
            all_passed=data.get("all_passed", False),
        )

    def _check_set_result(self, data: Any) -> ClientResult:
        if "error" in data:
            return ClientResult(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        return ClientResult(
            success=True,
            code="OK",
            checks=[self._parse_check(c) for c in data.get("checks", [])],
            gate=self._parse_gate(data.get("gate", {})),
        )

    def _single_check_result(self, data: Any) -> ClientResult:
        if "error" in data:
            return ClientResult(
                success=False, code=data.get("code", "ERROR"),
                message=data.get("error", ""),
            )
        return ClientResult(success=True, code="OK", checks=[self._parse_check(data)])

    # ── Checks ──

    def initialize(
        self,
        order_id: str,
        delivery_id: str,
        policy_scope: Optional[str] = None,
        context: dict[str, Any] | None = None,
    ) -> ClientResult:
        """Create the delivery's checklist (idempotent)."""
        body = {
            "order_id": order_id,
            "delivery_id": delivery_id,
            "policy_scope": policy_scope,
            "context": context or {},
        }
        return self._check_set_result(self._request("POST", "/compliance/init", json=body))

    def auto_verify(
        self,
        order_id: str,
        delivery_id: str,
        context: dict[str, Any] | None = None,
    ) -> ClientResult:
        """Run the automatic rules over the delivery's pending checks."""
        body = {"order_id": order_id, "delivery_id": delivery_id, "context": context or {}}
        return self._check_set_result(self._request("POST", "/compliance/auto-verify", json=body))

    def verify(
        self,
        check_id: str,
        status: str,
        actor_id: str,
        actor_type: str = "runner",
        permissions: list[str] | None = None,
        notes: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> ClientResult:
        """Record a manual pass/fail on a pending check."""
        body = {
            "status": status,
            "actor": _actor(actor_id, actor_type, permissions),
            "notes": notes,
            "failure_reason": failure_reason,
        }
        data = self._request("POST", f"/compliance/checks/{check_id}/verify", json=body)
        return self._single_check_result(data)

    def override(
        self,
        check_id: str,
        reason: str,
        actor_id: str,
        actor_type: str = "admin",
        permissions: list[str] | None = None,
    ) -> ClientResult:
        """Override a failed check; requires the manage:deliveries capability."""
        body = {"reason": reason, "actor": _actor(actor_id, actor_type, permissions)}
        data = self._request("POST", f"/compliance/checks/{check_id}/override", json=body)
        return self._single_check_result(data)

    def skip(
        self,
        check_id: str,
        reason: str,
        actor_id: str,
        actor_type: str = "admin",
        permissions: list[str] | None = None,
    ) -> ClientResult:
        """Administratively skip a pending check."""
        body = {"reason": reason, "actor": _actor(actor_id, actor_type, permissions)}
        data = self._request("POST", f"/compliance/checks/{check_id}/skip", json=body)
        return self._single_check_result(data)

    # ── Reads ──

    def get_checks(self, order_id: str, delivery_id: str) -> ClientResult:
        data = self._request(
            "GET", "/compliance/checks",
            params={"order_id": order_id, "delivery_id": delivery_id},
        )
        return self._check_set_result(data)

    def get_check(self, check_id: str) -> ClientResult:
        return self._single_check_result(self._request("GET", f"/compliance/checks/{check_id}"))

    def get_gate(self, order_id: str, delivery_id: str) -> Optional[ClientGate]:
        data = self._request(
            "GET", "/compliance/gate",
            params={"order_id": order_id, "delivery_id": delivery_id},
        )
        if "error" in data:
            return None
        return self._parse_gate(data)

    def can_complete(self, order_id: str, delivery_id: str) -> bool:
        """True only when the server confirms nothing blocks the delivery."""
        gate = self.get_gate(order_id, delivery_id)
        return gate is not None and gate.can_complete

    def get_audit_log(
        self,
        order_id: str,
        delivery_id: str,
        check_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "order_id": order_id, "delivery_id": delivery_id,
            "limit": limit, "offset": offset,
        }
        if check_id:
            params["check_id"] = check_id
        data = self._request("GET", "/compliance/audit", params=params)
        if isinstance(data, dict) and "error" in data:
            return []
        return data

    def verify_audit_chain(self, order_id: str, delivery_id: str) -> dict[str, Any]:
        """Server-side verification of the delivery's audit hash chains."""
        return self._request(
            "GET", "/compliance/audit/verify",
            params={"order_id": order_id, "delivery_id": delivery_id},
        )

    def list_policies(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/compliance/policies")
        if isinstance(data, dict) and "error" in data:
            return []
        return data

    def get_policy(self, scope: str) -> dict[str, Any]:
        return self._request("GET", f"/compliance/policies/{scope}")

    def health(self) -> dict[str, Any]:
        return self._request("GET", "/health")

    # ── Lifecycle ──

    def close(self) -> None:
        """Close the HTTP client."""
        self._http.close()

    def __enter__(self) -> "ComplianceClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
