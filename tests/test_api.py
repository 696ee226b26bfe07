import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import create_schema
from main import app, get_db


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, description, expression, **extra):
    payload = {"description": description, "expression": expression, "date": "2024-05-01"}
    payload.update(extra)
    response = client.post("/api/transactions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_preview_expression(client):
    response = client.post(
        "/api/expressions/evaluate", json={"expression": "1200 * 12", "frequency": "year"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is True
    assert body["amount"] == 14400
    assert body["type"] == "income"
    assert body["normalized_amount"] == 1200


def test_preview_reports_errors_inline(client):
    response = client.post("/api/expressions/evaluate", json={"expression": "1 / 0"})
    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is False
    assert body["error"].startswith("Cannot evaluate transaction expression:")


def test_frequencies(client):
    response = client.get("/api/frequencies")
    assert response.status_code == 200
    assert response.json()[1] == {"value": "week", "label": "Week"}


def test_transaction_lifecycle(client):
    salary = _create(client, "Salary", "4000")
    assert salary["type"] == "income"
    assert salary["monthly_equivalent"] == "4000.00 per month"

    rent = _create(client, "Rent", f"-${salary['id']} / 4", frequency="month")
    assert rent["amount"] == -1000
    assert rent["type"] == "expense"

    response = client.get(f"/api/transactions/{rent['id']}")
    assert response.status_code == 200
    assert response.json()["expression"] == f"-${salary['id']} / 4"

    response = client.put(
        f"/api/transactions/{rent['id']}",
        json={"description": "Rent", "expression": f"${rent['id']}", "date": "2024-05-01"},
    )
    assert response.status_code == 400
    assert "cannot reference itself" in response.json()["detail"]

    summary = client.get("/api/transactions/summary").json()
    assert summary == {
        "total_income": 4000,
        "total_expenses": 1000,
        "net_amount": 3000,
        "transaction_count": 2,
    }

    assert client.delete(f"/api/transactions/{rent['id']}").status_code == 204
    assert client.get(f"/api/transactions/{rent['id']}").status_code == 404


def test_invalid_expression_rejected(client):
    response = client.post(
        "/api/transactions",
        json={"description": "Bad", "expression": "2 * salary", "date": "2024-05-01"},
    )
    assert response.status_code == 400
    assert 'Undefined symbol "salary"' in response.json()["detail"]


def test_unknown_transaction(client):
    assert client.get("/api/transactions/nope").status_code == 404
    response = client.put(
        "/api/transactions/nope",
        json={"description": "x", "expression": "1", "date": "2024-05-01"},
    )
    assert response.status_code == 404


def test_categories_and_budget_percentages(client):
    response = client.post("/api/categories", json={"name": "Food", "flow": "expense"})
    assert response.status_code == 201
    food = response.json()

    _create(client, "Groceries", "-300", category_id=food["id"])
    _create(client, "Pay", "900")

    assert [c["name"] for c in client.get("/api/categories").json()] == ["Food"]
    body = client.get("/api/transactions/budget-percentages").json()
    assert body["total_amount"] == 1200
    names = [item["category_name"] for item in body["category_percentages"]]
    assert names == ["Uncategorized", "Food"]


def test_reevaluate_endpoint(client):
    _create(client, "Salary", "10")
    response = client.post("/api/transactions/reevaluate")
    assert response.status_code == 200
    assert response.json() == {"changed": 0}


@pytest.mark.parametrize("expression", ["round(1e300, 200)", "(" * 300 + "1" + ")" * 300])
def test_preview_extreme_input_is_invalid(client, expression):
    response = client.post("/api/expressions/evaluate", json={"expression": expression})
    assert response.status_code == 200
    assert response.json()["is_valid"] is False
