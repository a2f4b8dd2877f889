from fastapi.testclient import TestClient

from config import Settings
from main import create_app


def make_client(seed: bool = False) -> TestClient:
    app = create_app(Settings(database_url="sqlite://", seed_default_categories=seed))
    return TestClient(app)


def _bootstrap(client: TestClient) -> dict[str, int]:
    checking = client.post("/api/wallets", json={"name": "Checking"})
    cash = client.post("/api/wallets", json={"name": "Cash"})
    food = client.post("/api/categories", json={"name": "Food", "type": "expense"})
    salary = client.post("/api/categories", json={"name": "Salary", "type": "income"})
    for response in (checking, cash, food, salary):
        assert response.status_code == 201, response.text
    return {
        "checking": checking.json()["id"],
        "cash": cash.json()["id"],
        "food": food.json()["id"],
        "salary": salary.json()["id"],
    }


def test_health() -> None:
    client = make_client()
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_startup_seeds_default_categories() -> None:
    client = make_client(seed=True)

    names = {c["name"] for c in client.get("/api/categories").json()}
    assert {"Food & Dining", "Other Expense", "Salary", "Other Income"} <= names
    income = client.get("/api/categories", params={"type": "income"}).json()
    assert len(income) == 5


def test_ledger_flow_keeps_balances_consistent() -> None:
    client = make_client()
    ids = _bootstrap(client)

    income = client.post(
        "/api/transactions",
        json={
            "type": "income",
            "amount": 100000,
            "date": "2024-01-01",
            "wallet_id": ids["checking"],
            "category_id": ids["salary"],
        },
    )
    assert income.status_code == 201, income.text
    expense = client.post(
        "/api/transactions",
        json={
            "type": "expense",
            "amount": 30000,
            "date": "2024-01-05",
            "note": "  groceries ",
            "wallet_id": ids["checking"],
            "category_id": ids["food"],
        },
    )
    assert expense.status_code == 201, expense.text
    assert expense.json()["note"] == "groceries"
    assert client.get(f"/api/wallets/{ids['checking']}").json()["balance"] == 70000

    transfer = client.post(
        "/api/transfers",
        json={
            "from_wallet_id": ids["checking"],
            "to_wallet_id": ids["cash"],
            "amount": 50000,
            "date": "2024-01-10",
        },
    )
    assert transfer.status_code == 201, transfer.text
    body = transfer.json()
    assert body["from_transaction"]["amount"] == -50000
    assert body["to_transaction"]["amount"] == 50000
    assert body["from_transaction"]["transfer_id"] == body["id"]

    wallets = {w["name"]: w["balance"] for w in client.get("/api/wallets").json()}
    assert wallets == {"Cash": 50000, "Checking": 20000}

    summary = client.get(
        "/api/dashboard/summary",
        params={"start_date": "2024-01-01", "end_date": "2024-02-01"},
    ).json()
    assert summary["totals"] == {
        "income": 100000,
        "expenses": 30000,
        "net": 70000,
        "net_worth": 70000,
    }
    assert summary["metrics"]["savings_rate"] == 70.0

    spending = client.get(
        "/api/dashboard/spending-by-category",
        params={"start_date": "2024-01-01", "end_date": "2024-02-01"},
    ).json()
    assert spending["total_spending"] == 30000
    assert spending["categories"][0]["category_name"] == "Food"
    assert spending["categories"][0]["percentage"] == 100.0

    listing = client.get(
        "/api/transactions", params={"wallet_id": ids["checking"], "limit": 2}
    ).json()
    assert listing["total"] == 3
    assert listing["has_more"] is True
    assert [item["amount"] for item in listing["items"]] == [-50000, 30000]

    fetched = client.get(f"/api/transfers/{body['id']}")
    assert fetched.status_code == 200
    deleted = client.delete(f"/api/transactions/{body['to_transaction']['id']}")
    assert deleted.status_code == 200
    assert client.get(f"/api/transfers/{body['id']}").status_code == 404
    assert client.get(f"/api/wallets/{ids['checking']}").json()["balance"] == 70000


def test_domain_errors_map_to_status_codes() -> None:
    client = make_client()
    ids = _bootstrap(client)

    same_wallet = client.post(
        "/api/transfers",
        json={
            "from_wallet_id": ids["cash"],
            "to_wallet_id": ids["cash"],
            "amount": 100,
            "date": "2024-01-10",
        },
    )
    assert same_wallet.status_code == 400
    assert same_wallet.json()["detail"] == "Source and destination wallets must be different"

    transfer = client.post(
        "/api/transfers",
        json={
            "from_wallet_id": ids["checking"],
            "to_wallet_id": ids["cash"],
            "amount": 100,
            "date": "2024-01-10",
        },
    ).json()
    edit_leg = client.patch(
        f"/api/transactions/{transfer['from_transaction']['id']}", json={"amount": 5}
    )
    assert edit_leg.status_code == 400

    in_use = client.delete(f"/api/wallets/{ids['cash']}")
    assert in_use.status_code == 409

    duplicate = client.post("/api/categories", json={"name": "Food", "type": "expense"})
    assert duplicate.status_code == 409

    no_category = client.post(
        "/api/transactions",
        json={
            "type": "expense",
            "amount": 100,
            "date": "2024-01-01",
            "wallet_id": ids["cash"],
        },
    )
    assert no_category.status_code == 422

    assert client.get("/api/transactions/9999").status_code == 404
    assert client.delete("/api/budgets/9999").status_code == 404
    bad_range = client.get(
        "/api/dashboard/summary",
        params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
    )
    assert bad_range.status_code == 400


def test_budget_endpoints() -> None:
    client = make_client()
    ids = _bootstrap(client)

    created = client.post(
        "/api/budgets",
        json={"month": "2024-01-01", "category_id": ids["food"], "limit_amount": 500000},
    )
    assert created.status_code == 200, created.text
    client.post(
        "/api/transactions",
        json={
            "type": "expense",
            "amount": 700000,
            "date": "2024-01-15",
            "wallet_id": ids["checking"],
            "category_id": ids["food"],
        },
    )

    rows = client.get(
        "/api/budgets", params={"month": "2024-01-01", "include_actual": "true"}
    ).json()
    assert rows[0]["actual_spent"] == 700000
    assert rows[0]["remaining"] == -200000

    budget = client.get(f"/api/budgets/{created.json()['id']}").json()
    assert budget["category_name"] == "Food"

    assert client.get("/api/budgets", params={"include_actual": "true"}).status_code == 400
    assert client.get("/api/budgets", params={"month": "2024-01-15"}).status_code == 400
    not_first = client.post(
        "/api/budgets",
        json={"month": "2024-01-15", "category_id": ids["food"], "limit_amount": 1},
    )
    assert not_first.status_code == 422

    copied = client.post(
        "/api/budgets/copy", json={"from_month": "2024-01-01", "to_month": "2024-02-01"}
    )
    assert copied.status_code == 201
    assert copied.json()["count"] == 1
    again = client.post(
        "/api/budgets/copy", json={"from_month": "2024-01-01", "to_month": "2024-02-01"}
    )
    assert again.json()["count"] == 0

    february = client.get("/api/budgets", params={"month": "2024-02-01"}).json()
    assert [b["limit_amount"] for b in february] == [500000]

    patched = client.patch(
        f"/api/budgets/{february[0]['id']}", json={"limit_amount": 1000}
    )
    assert patched.json()["limit_amount"] == 1000

    in_use = client.delete(f"/api/categories/{ids['food']}")
    assert in_use.status_code == 409
