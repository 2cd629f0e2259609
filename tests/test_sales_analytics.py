from datetime import date, timedelta

import pytest

from branchops.core.db.base import utc_now
from branchops.core.errors import ValidationError
from branchops.core.reporting import sales
from branchops.core.reporting.tables import odoo_sales

TODAY = date(2025, 11, 12)  # a Wednesday


def _sale(order, branch, day, item, category, qty, total, client=None):
    return {
        "client": client,
        "order_number": order,
        "branch": branch,
        "date": day,
        "items": item,
        "category": category,
        "qty": qty,
        "price_subtotal_with_tax": total,
    }


@pytest.fixture()
def sales_rows(db):
    rows = [
        _sale("O1", "ISC DIP", TODAY, "Chicken Biryani", "Main", 10, 100, "Emirates School"),
        _sale("O1", "ISC DIP", TODAY, "Orange Juice", "Drinks", 5, 20, "Emirates School"),
        _sale("O2", "ISC RAK", TODAY, "Chicken Biryani", "Main", 2, 30, "Emirates School"),
        _sale("O3", "ISC DIP", date(2025, 11, 11), "Chicken Biryani", "Main", 4, 50, "Gulf Clinic"),
        _sale("O4", "ISC RAK", date(2025, 11, 5), "Orange Juice", "Drinks", 10, 40),
        _sale("O5", None, date(2025, 10, 20), "Chicken Biryani", "Main", 6, 60, "Gulf Clinic"),
    ]
    db.execute(odoo_sales.insert(), rows)
    db.commit()
    return rows


def test_calc_change():
    assert sales.calc_change(150, 50) == 200.0
    assert sales.calc_change(25, 30) == -16.7
    assert sales.calc_change(5, 0) == 100.0
    assert sales.calc_change(0, 0) == 0.0


def test_period_bounds():
    assert sales.period_bounds("today", TODAY) == (TODAY, date(2025, 11, 13))
    assert sales.period_bounds("week", TODAY) == (date(2025, 11, 10), None)
    assert sales.period_bounds("month", TODAY) == (date(2025, 11, 1), None)
    assert sales.period_bounds("year", TODAY) == (date(2025, 1, 1), None)
    assert sales.previous_month_start(date(2025, 1, 15)) == date(2024, 12, 1)
    with pytest.raises(ValidationError, match="Unknown period: decade"):
        sales.period_bounds("decade", TODAY)


def test_moving_average_uses_trailing_window():
    assert sales.moving_average([10, 20, 30], window=2) == [10.0, 15.0, 25.0]
    assert sales.moving_average([]) == []


def test_summary(db, sales_rows):
    out = sales.summary(db, today=TODAY)

    assert out["today"] == {
        "revenue": 150.0,
        "units": 17.0,
        "orders": 2,
        "aov": 75.0,
        "changes": {"revenue": 200.0, "units": 325.0, "orders": 100.0, "aov": 50.0},
    }
    assert out["thisWeek"] == {
        "revenue": 200.0,
        "units": 21.0,
        "orders": 3,
        "changes": {"revenue": 400.0, "units": 110.0, "orders": 200.0},
    }
    assert out["thisMonth"]["aov"] == 60.0
    assert out["thisMonth"]["changes"] == {"revenue": 300.0, "units": 416.7, "orders": 300.0, "aov": 0.0}
    assert out["lastMonth"] == {"revenue": 60.0, "units": 6.0, "orders": 1}


def test_summary_without_sales(db):
    out = sales.summary(db, today=TODAY)
    assert out["today"]["revenue"] == 0.0
    assert out["today"]["aov"] == 0.0
    assert out["thisMonth"]["changes"]["revenue"] == 0.0


def test_by_branch(db, sales_rows):
    month = sales.by_branch(db, period="month", today=TODAY)
    assert month["totalRevenue"] == 240.0
    assert month["branches"] == [
        {"branch": "ISC DIP", "revenue": 170.0, "units": 19.0, "orders": 2, "percentage": 70.8},
        {"branch": "ISC RAK", "revenue": 70.0, "units": 12.0, "orders": 2, "percentage": 29.2},
    ]

    year = sales.by_branch(db, period="year", today=TODAY)
    assert [b["branch"] for b in year["branches"]] == ["ISC DIP", "ISC RAK", "Unknown"]

    today = sales.by_branch(db, period="today", today=TODAY)
    assert [(b["branch"], b["revenue"]) for b in today["branches"]] == [("ISC DIP", 120.0), ("ISC RAK", 30.0)]


def test_top_products(db, sales_rows):
    out = sales.top_products(db, period="month", today=TODAY)
    assert out["totals"] == {"revenue": 240.0, "units": 31.0}
    biryani, juice = out["topByRevenue"]
    assert biryani == {
        "product": "Chicken Biryani",
        "category": "Main",
        "revenue": 180.0,
        "units": 16.0,
        "orderCount": 3,
        "revenuePercentage": 75.0,
    }
    assert juice["revenuePercentage"] == 25.0
    assert [(p["product"], p["unitsPercentage"]) for p in out["topByUnits"]] == [
        ("Chicken Biryani", 51.6),
        ("Orange Juice", 48.4),
    ]

    limited = sales.top_products(db, period="month", limit=1, today=TODAY)
    assert [p["product"] for p in limited["topByRevenue"]] == ["Chicken Biryani"]


def test_trends(db, sales_rows):
    out = sales.trends(db, days=30, today=TODAY)
    assert [(d["date"], d["revenue"], d["revenueMA7"]) for d in out["trends"]] == [
        ("2025-10-20", 60.0, 60.0),
        ("2025-11-05", 40.0, 50.0),
        ("2025-11-11", 50.0, 50.0),
        ("2025-11-12", 150.0, 75.0),
    ]
    assert out["summary"] == {"totalRevenue": 300.0, "totalUnits": 37.0, "totalOrders": 5, "avgDailyRevenue": 75.0}

    short = sales.trends(db, days=1, today=TODAY)
    assert [d["date"] for d in short["trends"]] == ["2025-11-11", "2025-11-12"]


def test_by_category(db, sales_rows):
    db.execute(odoo_sales.insert(), [_sale("O6", "ISC DIP", date(2025, 11, 10), "Water", None, 1, 10)])
    db.commit()

    out = sales.by_category(db, period="month", today=TODAY)
    assert out["totalRevenue"] == 250.0
    assert out["categories"][0] == {
        "category": "Main",
        "revenue": 180.0,
        "units": 16.0,
        "orders": 3,
        "productCount": 1,
        "percentage": 72.0,
        "colorIndex": 0,
        "color": "#10B981",
    }
    assert [(c["category"], c["percentage"], c["color"]) for c in out["categories"][1:]] == [
        ("Drinks", 24.0, "#3B82F6"),
        ("Uncategorized", 4.0, "#8B5CF6"),
    ]


def test_top_clients(db, sales_rows):
    month = sales.top_clients(db, period="month", today=TODAY)
    assert month["totalRevenue"] == 240.0
    assert month["clients"] == [
        {
            "client": "Emirates School",
            "revenue": 150.0,
            "units": 17.0,
            "orders": 2,
            "activeDays": 1,
            "avgOrderValue": 75.0,
            "percentage": 62.5,
        },
        {
            "client": "Gulf Clinic",
            "revenue": 50.0,
            "units": 4.0,
            "orders": 1,
            "activeDays": 1,
            "avgOrderValue": 50.0,
            "percentage": 20.8,
        },
    ]

    year = sales.top_clients(db, period="year", today=TODAY)
    clinic = year["clients"][1]
    assert (clinic["revenue"], clinic["orders"], clinic["activeDays"], clinic["avgOrderValue"]) == (110.0, 2, 2, 55.0)
    assert [c["percentage"] for c in year["clients"]] == [50.0, 36.7]

    assert [c["client"] for c in sales.top_clients(db, period="year", limit=1, today=TODAY)["clients"]] == [
        "Emirates School"
    ]


def test_branch_history(db, sales_rows):
    week = sales.branch_history(db, days=7, today=TODAY)
    assert week["days"] == 7
    assert week["dateRange"] == {"start": "2025-11-05", "end": "2025-11-11"}
    assert week["branches"] == [
        {
            "branch": "ISC DIP",
            "history": [{"date": "2025-11-11", "revenue": 50.0, "units": 4.0, "orders": 1}],
            "totalRevenue": 50.0,
            "totalOrders": 1,
            "avgRevenue": 50.0,
        },
        {
            "branch": "ISC RAK",
            "history": [{"date": "2025-11-05", "revenue": 40.0, "units": 10.0, "orders": 1}],
            "totalRevenue": 40.0,
            "totalOrders": 1,
            "avgRevenue": 40.0,
        },
    ]

    month = sales.branch_history(db, days=30, today=TODAY)
    assert [b["branch"] for b in month["branches"]] == ["Unknown", "ISC DIP", "ISC RAK"]


@pytest.mark.parametrize(
    "today,expected",
    [
        (date(2025, 11, 10), (date(2025, 11, 9), date(2025, 11, 9), False)),  # Monday
        (date(2025, 11, 12), (date(2025, 11, 9), date(2025, 11, 11), False)),
        (date(2025, 11, 14), (date(2025, 11, 9), date(2025, 11, 13), False)),  # Friday
        (date(2025, 11, 15), (date(2025, 11, 9), date(2025, 11, 14), True)),
        (date(2025, 11, 16), (date(2025, 11, 9), date(2025, 11, 14), True)),
    ],
)
def test_sales_week_window(today, expected):
    assert sales.sales_week_window(today) == expected


def test_weekly_and_yesterday_by_branch(db, sales_rows):
    running = sales.weekly_by_branch(db, today=TODAY)
    assert running == {
        "branches": [{"branch": "ISC DIP", "revenue": 50.0, "units": 4.0, "orders": 1}],
        "weekStart": "2025-11-09",
        "weekEnd": "2025-11-11",
        "isComplete": False,
    }

    saturday = sales.weekly_by_branch(db, today=date(2025, 11, 15))
    assert saturday["isComplete"] is True
    assert saturday["branches"] == [
        {"branch": "ISC DIP", "revenue": 170.0, "units": 19.0, "orders": 2},
        {"branch": "ISC RAK", "revenue": 30.0, "units": 2.0, "orders": 1},
    ]

    assert sales.yesterday_by_branch(db, today=TODAY) == {
        "branches": [{"branch": "ISC DIP", "revenue": 50.0, "units": 4.0, "orders": 1}],
        "date": "2025-11-11",
    }
    # O5 has no branch
    assert sales.yesterday_by_branch(db, today=date(2025, 10, 21)) == {"branches": [], "date": "2025-10-20"}


def test_sales_endpoints(client, db, as_role):
    today = utc_now().date()
    db.execute(
        odoo_sales.insert(),
        [
            _sale("A1", "ISC DIP", today, "Chicken Biryani", "Main", 3, 90),
            _sale("A2", "ISC DIP", today - timedelta(days=1), "Chicken Biryani", "Main", 1, 30),
        ],
    )
    db.commit()
    lead = as_role("operations_lead")

    summary = client.get("/api/v1/analytics/sales/summary", headers=lead).json()
    assert summary["today"]["revenue"] == 90.0
    assert summary["today"]["changes"]["revenue"] == 200.0

    branches = client.get("/api/v1/analytics/sales/branches", params={"period": "today"}, headers=lead).json()
    assert branches["branches"][0]["branch"] == "ISC DIP"
    assert branches["period"] == "today"

    products = client.get("/api/v1/analytics/sales/products", params={"period": "year"}, headers=lead).json()
    assert products["topByRevenue"][0]["orderCount"] >= 1

    trends = client.get("/api/v1/analytics/sales/trends", params={"days": 7}, headers=lead).json()
    assert trends["trends"][-1]["date"] == today.isoformat()

    categories = client.get("/api/v1/analytics/sales/categories", params={"period": "year"}, headers=lead).json()
    assert categories["categories"][0]["category"] == "Main"
    assert client.get("/api/v1/analytics/sales/clients", headers=lead).json()["clients"] == []

    yesterday = (today - timedelta(days=1)).isoformat()
    history = client.get("/api/v1/analytics/sales/branches/history", params={"days": 7}, headers=lead).json()
    assert history["branches"][0]["history"] == [{"date": yesterday, "revenue": 30.0, "units": 1.0, "orders": 1}]
    latest = client.get("/api/v1/analytics/sales/branches/yesterday", headers=lead).json()
    assert latest == {"branches": [{"branch": "ISC DIP", "revenue": 30.0, "units": 1.0, "orders": 1}], "date": yesterday}
    weekly = client.get("/api/v1/analytics/sales/branches/weekly", headers=lead).json()
    assert set(weekly) == {"branches", "weekStart", "weekEnd", "isComplete"}

    bad = client.get("/api/v1/analytics/sales/branches", params={"period": "decade"}, headers=lead)
    assert bad.status_code == 400
    assert client.get("/api/v1/analytics/sales/trends", params={"days": 0}, headers=lead).status_code == 422
    assert client.get("/api/v1/analytics/sales/categories", params={"period": "decade"}, headers=lead).status_code == 400
    assert client.get("/api/v1/analytics/sales/branches/history", params={"days": 0}, headers=lead).status_code == 422
    assert client.get("/api/v1/analytics/sales/summary", headers=as_role("dispatcher")).status_code == 403
