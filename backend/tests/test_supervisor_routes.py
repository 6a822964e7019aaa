"""API tests for supervisor monitoring endpoints."""

from datetime import timedelta

from cashdesk.core.clock import utcnow
from cashdesk.models.notification import Notification

API = "/api/v1/supervisor"
CASHIER_API = "/api/v1/cashier"


def _check_in(client, cashier, headers):
    response = client.post(f"{CASHIER_API}/checkin", json={"cashierId": cashier.id}, headers=headers)
    assert response.status_code in (200, 201)
    return response.json()


class TestAccess:
    def test_cashier_is_forbidden(self, client, cashier_headers):
        response = client.get(f"{API}/active-cashiers", headers=cashier_headers)
        assert response.status_code == 403

    def test_requires_token(self, client):
        assert client.get(f"{API}/dashboard-stats").status_code == 401

    def test_manager_allowed(self, client, manager_headers):
        assert client.get(f"{API}/dashboard-stats", headers=manager_headers).status_code == 200


class TestLiveMonitoring:
    def test_active_cashiers(self, client, cashier, other_cashier, cashier_headers, supervisor_headers, add_sale):
        _check_in(client, cashier, cashier_headers)
        add_sale(cashier.id, "42.00", utcnow())

        data = client.get(f"{API}/active-cashiers", headers=supervisor_headers).json()

        assert data["count"] == 1
        row = data["cashiers"][0]
        assert row["cashierId"] == cashier.id
        assert row["cashierName"] == "Alice Cashier"
        assert row["todaySales"] == 42.0
        assert row["todayTransactions"] == 1
        assert row["connected"] is False
        assert row["presence"] is None

    def test_checked_out_cashier_not_active(self, client, cashier, cashier_headers, supervisor_headers):
        _check_in(client, cashier, cashier_headers)
        client.post(f"{CASHIER_API}/checkout", json={"cashierId": cashier.id}, headers=cashier_headers)
        data = client.get(f"{API}/active-cashiers", headers=supervisor_headers).json()
        assert data["count"] == 0

    def test_cashier_monitoring(self, client, cashier, cashier_headers, supervisor_headers, add_sale):
        _check_in(client, cashier, cashier_headers)
        now = utcnow()
        add_sale(cashier.id, "10.00", now - timedelta(seconds=1), items=2)
        add_sale(cashier.id, "30.00", now, items=4)

        response = client.get(f"{API}/cashier-monitoring/{cashier.id}", headers=supervisor_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["cashier"]["name"] == "Alice Cashier"
        assert data["todayStats"]["sales"] == 40.0
        assert data["todayStats"]["transactions"] == 2
        assert data["todayStats"]["itemsSold"] == 6
        assert data["todayStats"]["averageSale"] == 20.0
        assert [t["amount"] for t in data["recentTransactions"]] == [30.0, 10.0]
        assert data["performanceMetrics"]["itemsPerTransaction"] == 3.0
        assert data["activeEntry"]["isActive"] is True

    def test_cashier_monitoring_unknown(self, client, supervisor_headers):
        response = client.get(f"{API}/cashier-monitoring/9999", headers=supervisor_headers)
        assert response.status_code == 404

    def test_dashboard_stats(self, client, cashier, other_cashier, cashier_headers, supervisor_headers):
        _check_in(client, cashier, cashier_headers)
        _check_in(client, other_cashier, supervisor_headers)
        client.post(
            f"{CASHIER_API}/checkout", json={"cashierId": other_cashier.id, "reason": "break"},
            headers=supervisor_headers,
        )

        data = client.get(f"{API}/dashboard-stats", headers=supervisor_headers).json()

        assert data["activeCashiers"] == 1
        assert data["cashiersWorkedToday"] == 2
        assert data["totalCheckIns"] == 2
        assert data["totalCheckOuts"] == 1
        assert data["checkoutReasons"] == {"break": 1}
        assert data["connectedCashiers"] == 0
        assert data["unreadNotifications"] == 3

    def test_hub_status(self, client, supervisor_headers):
        data = client.get(f"{API}/hub-status", headers=supervisor_headers).json()
        assert data["connectedCashiers"] == 0
        assert data["screenShares"] == []


class TestDailySessions:
    def test_list_and_detail(self, client, cashier, cashier_headers, supervisor_headers):
        checked_in = _check_in(client, cashier, cashier_headers)
        session_id = checked_in["session"]["id"]

        listing = client.get(f"{API}/daily-sessions?cashierId={cashier.id}", headers=supervisor_headers).json()
        assert listing["total"] == 1
        assert listing["sessions"][0]["id"] == session_id

        detail = client.get(f"{API}/daily-sessions/{session_id}", headers=supervisor_headers).json()
        assert detail["session"]["id"] == session_id
        assert detail["activeEntry"]["isActive"] is True

    def test_date_filter(self, client, cashier, cashier_headers, supervisor_headers):
        _check_in(client, cashier, cashier_headers)
        response = client.get(
            f"{API}/daily-sessions?startDate=2000-01-01&endDate=2000-01-31", headers=supervisor_headers,
        )
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_review_flow(self, client, cashier, cashier_headers, supervisor, supervisor_headers):
        session_id = _check_in(client, cashier, cashier_headers)["session"]["id"]

        early = client.patch(f"{API}/daily-sessions/{session_id}/review", headers=supervisor_headers)
        assert early.status_code == 409

        client.post(f"{CASHIER_API}/checkout", json={"cashierId": cashier.id}, headers=cashier_headers)
        unreviewed = client.get(f"{API}/unreviewed-sessions", headers=supervisor_headers).json()
        assert [s["id"] for s in unreviewed["items"]] == [session_id]

        reviewed = client.patch(f"{API}/daily-sessions/{session_id}/review", headers=supervisor_headers)
        assert reviewed.status_code == 200
        assert reviewed.json()["session"]["adminReviewed"] is True
        assert reviewed.json()["session"]["adminReviewedBy"] == supervisor.id

        assert client.get(f"{API}/unreviewed-sessions", headers=supervisor_headers).json()["total"] == 0

    def test_review_unknown(self, client, supervisor_headers):
        assert client.patch(f"{API}/daily-sessions/777/review", headers=supervisor_headers).status_code == 404


class TestInterventions:
    def test_force_checkout(self, client, cashier, cashier_headers, supervisor, supervisor_headers, db_session):
        session_id = _check_in(client, cashier, cashier_headers)["session"]["id"]

        response = client.patch(
            f"{API}/force-checkout/{session_id}",
            json={"reason": "emergency", "reasonDetails": "Register fault"},
            headers=supervisor_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["entry"]["closedBy"] == supervisor.id
        assert data["sessionStats"]["reason"] == "emergency"
        assert data["cashierNotified"] is False
        assert data["session"]["currentlyActive"] is False
        assert db_session.query(Notification).filter(Notification.type == "force-checkout").count() == 1

    def test_force_checkout_without_body(self, client, cashier, cashier_headers, supervisor_headers):
        session_id = _check_in(client, cashier, cashier_headers)["session"]["id"]
        response = client.patch(f"{API}/force-checkout/{session_id}", headers=supervisor_headers)
        assert response.status_code == 200
        assert response.json()["sessionStats"]["reason"] == "other"

    def test_force_checkout_nothing_open(self, client, cashier, cashier_headers, supervisor_headers):
        session_id = _check_in(client, cashier, cashier_headers)["session"]["id"]
        client.post(f"{CASHIER_API}/checkout", json={"cashierId": cashier.id}, headers=cashier_headers)
        response = client.patch(f"{API}/force-checkout/{session_id}", headers=supervisor_headers)
        assert response.status_code == 404

    def test_force_checkout_forbidden_for_cashier(self, client, cashier, cashier_headers):
        session_id = _check_in(client, cashier, cashier_headers)["session"]["id"]
        response = client.patch(f"{API}/force-checkout/{session_id}", headers=cashier_headers)
        assert response.status_code == 403

    def test_stop_screen_share_when_none(self, client, cashier, supervisor_headers):
        response = client.post(f"{API}/screen-share/{cashier.id}/stop", headers=supervisor_headers)
        assert response.status_code == 404
