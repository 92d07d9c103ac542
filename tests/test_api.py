import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import issue_token
from database import Base, get_db
from main import _load_app_version, app
from services import BudgetService


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _auth(user_id: int = 1) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def test_requests_without_token_are_rejected(client) -> None:
    response = client.get("/api/categories")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"

    response = client.get("/api/categories", headers={"Authorization": "Bearer bogus"})
    assert response.status_code == 401


def test_health_needs_no_token(client) -> None:
    assert client.get("/api/health").json()["status"] == "ok"


def test_defaults_transactions_and_monthly_summary(client) -> None:
    response = client.post("/api/categories/defaults", headers=_auth())
    assert response.json() == {"created": 13}
    assert client.post("/api/categories/defaults", headers=_auth()).json() == {
        "created": 0
    }

    categories = client.get("/api/categories?type=expense", headers=_auth()).json()
    food = next(c for c in categories if c["name"] == "Food & Dining")
    salary = client.get("/api/categories?type=income", headers=_auth()).json()[0]

    response = client.post(
        "/api/transactions",
        headers=_auth(),
        json={
            "amount": 100,
            "type": "income",
            "category_id": salary["id"],
            "date": "2025-03-01",
        },
    )
    assert response.status_code == 201
    response = client.post(
        "/api/transactions",
        headers=_auth(),
        json={
            "amount": 40,
            "type": "expense",
            "category_id": food["id"],
            "date": "2025-03-15",
            "description": "Groceries",
        },
    )
    assert response.status_code == 201
    assert response.json()["category"]["name"] == "Food & Dining"

    summary = client.get("/api/summary/monthly?month=2025-03", headers=_auth()).json()
    assert summary["income"] == 100
    assert summary["expenses"] == 40
    assert summary["balance"] == 60
    assert summary["transaction_count"] == 2
    assert summary["breakdown"][0]["category"]["id"] == food["id"]

    recent = client.get("/api/transactions/recent?limit=1", headers=_auth()).json()
    assert [t["description"] for t in recent] == ["Groceries"]


def test_error_statuses(client) -> None:
    client.post("/api/categories/defaults", headers=_auth())
    default = client.get("/api/categories", headers=_auth()).json()[0]

    response = client.delete(f"/api/categories/{default['id']}", headers=_auth())
    assert response.status_code == 409

    response = client.delete(f"/api/categories/{default['id']}", headers=_auth(2))
    assert response.status_code == 404

    response = client.post(
        "/api/transactions",
        headers=_auth(2),
        json={
            "amount": 5,
            "type": default["type"],
            "category_id": default["id"],
            "date": "2025-01-01",
        },
    )
    assert response.status_code == 400

    response = client.get("/api/budgets?month=2025-13", headers=_auth())
    assert response.status_code == 422


def test_budget_round_trip(client) -> None:
    response = client.post(
        "/api/budgets", headers=_auth(), json={"amount": 500, "month": "2025-01"}
    )
    assert response.status_code == 200

    budgets = client.get("/api/budgets?month=2025-01", headers=_auth()).json()
    assert len(budgets) == 1
    assert budgets[0]["category"] is None
    assert budgets[0]["amount"] == 500
    assert budgets[0]["spent"] == 0
    assert budgets[0]["remaining"] == 500
    assert budgets[0]["percentage"] == 0
    assert budgets[0]["is_recurring"] is False

    response = client.delete(f"/api/budgets/{budgets[0]['id']}", headers=_auth())
    assert response.status_code == 204
    assert client.get("/api/budgets?month=2025-01", headers=_auth()).json() == []


def test_savings_goal_and_preferences(client) -> None:
    goal = client.post(
        "/api/savings-goals",
        headers=_auth(),
        json={"name": "Trip", "target_amount": 300, "target_date": "2025-08-01"},
    ).json()
    assert goal["is_completed"] is False

    goal = client.post(
        f"/api/savings-goals/{goal['id']}/progress",
        headers=_auth(),
        json={"amount": 301},
    ).json()
    assert goal["is_completed"] is True

    prefs = client.get("/api/preferences", headers=_auth()).json()
    assert prefs == {"dark_mode": False, "currency": "₹", "default_view": "dashboard"}
    prefs = client.patch(
        "/api/preferences", headers=_auth(), json={"dark_mode": True}
    ).json()
    assert prefs["dark_mode"] is True


def test_duplicate_budget_insert_returns_conflict(client, monkeypatch) -> None:
    payload = {"amount": 500, "month": "2025-01"}
    assert client.post("/api/budgets", headers=_auth(), json=payload).status_code == 200

    monkeypatch.setattr(BudgetService, "_find", lambda self, category_id, month: None)
    response = client.post("/api/budgets", headers=_auth(), json=payload)
    assert response.status_code == 409
    assert response.json()["detail"] == "Budget already exists for this month"


def test_app_version_read_from_pyproject(tmp_path, monkeypatch) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nversion = "9.9.9"\n')
    monkeypatch.chdir(tmp_path)
    assert _load_app_version() == "9.9.9"

    (tmp_path / "pyproject.toml").write_text("not = [valid")
    assert _load_app_version() == "unknown"
