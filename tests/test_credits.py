import pytest

from theunoia.errors import ServiceError
from theunoia.services import credits
from theunoia.validation import CreditAdjustmentForm, parse_form

from conftest import api_error


@pytest.mark.parametrize("data, expected", [(42, 42), ([17], 17), ([{"balance": 8}], 8), ([], 0), (None, 0)])
def test_get_balance_shapes(use_client, data, expected):
    client = use_client(credits)
    client.queue("rpc:get_freelancer_credit_balance", data)
    assert credits.get_balance("u1") == expected


def test_get_balance_without_user(use_client):
    client = use_client(credits)
    assert credits.get_balance("") == 0
    assert client.executed == []


def test_get_balance_error(use_client):
    client = use_client(credits)
    client.queue("rpc:get_freelancer_credit_balance", api_error("rpc missing"))
    with pytest.raises(ServiceError, match="get_balance: rpc missing"):
        credits.get_balance("u1")


def test_token_balances_caps_free_credits():
    transactions = [
        {"transaction_type": "signup_bonus", "amount": 100},
        {"transaction_type": "signup_bonus", "amount": 50},
        {"transaction_type": "bid_placed", "amount": -10},
    ]
    balances = credits.token_balances(130, transactions)
    assert (balances.total, balances.free, balances.paid) == (130, 100, 30)
    low = credits.token_balances(40, transactions)
    assert (low.free, low.paid) == (40, 0)
    assert credits.token_balances(-5, []).total == 0


def test_admin_modify_credits_sends_signed_amount(use_client):
    client = use_client(credits)
    form = parse_form(CreditAdjustmentForm, credits=25, notes="Refund for outage", direction="deduct")
    credits.admin_modify_credits("u9", form)
    call = client.calls_to("rpc:admin_modify_credits")[0]
    assert call.op("rpc")[0] == (
        "admin_modify_credits",
        {"_target_user_id": "u9", "_amount": -25, "_notes": "Refund for outage"},
    )


def test_admin_modify_credits_needs_target():
    form = parse_form(CreditAdjustmentForm, credits=5, notes="x")
    with pytest.raises(ValueError):
        credits.admin_modify_credits("", form)


def test_list_balances_joins_profiles(use_client):
    client = use_client(credits)
    client.queue("freelancer_credits", [{"user_id": "u1", "balance": 90}, {"user_id": "u2", "balance": 10}])
    client.queue("user_profiles", [{"user_id": "u1", "first_name": "Asha", "last_name": "Rao", "email": "a@x.in"}])
    rows = credits.list_balances()
    assert rows[0]["name"] == "Asha Rao"
    assert rows[1]["name"] == "Unknown user" and rows[1]["email"] == ""
    assert credits.filter_balances(rows, "asha") == [rows[0]]
    assert credits.filter_balances(rows, "  ") == rows


def test_transaction_badge():
    assert credits.transaction_badge("refund").label == "Refund"
    assert credits.transaction_badge("mystery").label == "mystery"
    assert credits.transaction_badge(None).color == "gray"


def test_packages_and_checkout():
    pro = credits.get_package("professional")
    assert pro.popular and pro.savings_percent == 10
    assert credits.get_package("gold") is None
    summary = credits.checkout_summary(credits.get_package("starter"), 15)
    assert summary["balance_after"] == 65
    assert summary["bids_covered"] == 6


@pytest.mark.parametrize(
    "bid_status, project_status, expected",
    [
        ("pending", "cancelled", "eligible"),
        ("rejected", "open", "not_eligible"),
        ("pending", "in_progress", "not_eligible"),
        ("accepted", "in_progress", "other"),
        ("pending", "open", "other"),
    ],
)
def test_refund_eligibility(bid_status, project_status, expected):
    assert credits.refund_eligibility({"status": bid_status}, {"status": project_status}) == expected


def test_free_token_status():
    items = credits.free_token_status([{"transaction_type": "signup_bonus"}], profile_complete=False, bids_placed=5)
    earned = {item["label"]: item["earned"] for item in items}
    assert earned == {
        "Signup bonus": True,
        "Complete your profile": False,
        "Place your first 5 bids": True,
        "Weekly active bonus": False,
    }
