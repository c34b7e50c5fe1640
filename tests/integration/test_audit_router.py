"""Integration tests for the audit log API endpoints."""


class TestAuditRouter:
    async def _setup(self, client, admin_headers):
        """Initialize ord-1/del-1 and fail the zone check."""
        await client.post("/compliance/init", json={
            "order_id": "ord-1",
            "delivery_id": "del-1",
            "context": {"in_licensed_zone": False},
        }, headers=admin_headers)
        resp = await client.post("/compliance/auto-verify", json={
            "order_id": "ord-1", "delivery_id": "del-1",
        }, headers=admin_headers)
        return {c["check_type"]: c for c in resp.json()["checks"]}

    async def test_get_audit_entries(self, client, admin_headers):
        await self._setup(client, admin_headers)
        resp = await client.get(
            "/compliance/audit?order_id=ord-1&delivery_id=del-1&limit=200",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        entries = resp.json()
        # six initializations, five automatic verdicts
        assert len(entries) == 11
        assert entries[0]["action"] == "initialized"
        assert entries[0]["prev_hash"] is None
        assert entries[0]["event_hash"] is not None
        assert entries[0]["signature"] is not None

    async def test_filter_by_check_and_action(self, client, admin_headers):
        checks = await self._setup(client, admin_headers)
        zone_id = checks["licensed_zone"]["id"]
        resp = await client.get(
            f"/compliance/audit?order_id=ord-1&delivery_id=del-1&check_id={zone_id}"
            "&action=auto_verified",
            headers=admin_headers,
        )
        entries = resp.json()
        assert len(entries) == 1
        assert entries[0]["actor_type"] == "system"
        assert entries[0]["metadata"]["previous_status"] == "pending"
        assert entries[0]["metadata"]["new_status"] == "failed"

    async def test_override_entry(self, client, admin_headers):
        checks = await self._setup(client, admin_headers)
        zone_id = checks["licensed_zone"]["id"]
        await client.post(
            f"/compliance/checks/{zone_id}/override",
            json={
                "reason": "Address confirmed by manager",
                "actor": {"actor_id": "admin-1", "actor_type": "admin"},
            },
            headers=admin_headers,
        )
        resp = await client.get(
            "/compliance/audit?order_id=ord-1&delivery_id=del-1&action=overridden",
            headers=admin_headers,
        )
        entries = resp.json()
        assert len(entries) == 1
        assert entries[0]["actor_id"] == "admin-1"
        assert entries[0]["metadata"]["reason"] == "Address confirmed by manager"

    async def test_paging(self, client, admin_headers):
        await self._setup(client, admin_headers)
        resp = await client.get(
            "/compliance/audit?order_id=ord-1&delivery_id=del-1&limit=3&offset=9",
            headers=admin_headers,
        )
        assert len(resp.json()) == 2

    async def test_limit_capped(self, client, admin_headers):
        resp = await client.get(
            "/compliance/audit?order_id=ord-1&delivery_id=del-1&limit=1000",
            headers=admin_headers,
        )
        assert resp.status_code == 422

    async def test_verify_chain_endpoint(self, client, admin_headers):
        await self._setup(client, admin_headers)
        resp = await client.get(
            "/compliance/audit/verify?order_id=ord-1&delivery_id=del-1",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["events_checked"] == 11
        assert data["break_at"] is None
