import threading

import pytest

from packages.features.accounts.accounts import AccountNotFound, complete_company_signup, create_temp_company
from packages.features.wallet.wallet import (
    InsufficientBalance,
    WalletError,
    add_to_wallet,
    deduct_from_wallet,
    get_wallet_balance,
    has_sufficient_balance,
    list_ledger,
    list_wallets,
    process_wallet_payment,
    refund_wallet_payment,
)


@pytest.fixture
def company_id():
    temp = create_temp_company("9222222222")
    return complete_company_signup(temp["id"], "Owner", "Agency", 2, "secret123")["id"]


def test_new_company_starts_with_empty_wallet(company_id):
    wallet = get_wallet_balance(company_id)
    assert wallet["balance"] == 0
    assert wallet["currency"] == "INR"


def test_unknown_company():
    with pytest.raises(AccountNotFound):
        get_wallet_balance("cmp_missing")


def test_credit_and_debit_write_ledger(company_id):
    credit = add_to_wallet(company_id, 1000, "Top up")
    assert (credit["old_balance"], credit["new_balance"]) == (0, 1000)
    debit = deduct_from_wallet(company_id, 250.555, "Booking", reference="BK-1")
    assert debit["amount"] == 250.56
    assert debit["new_balance"] == 749.44

    entries = list_ledger(company_id)
    assert [e["kind"] for e in entries] == ["debit", "credit"]
    assert entries[0]["reference"] == "BK-1"
    assert entries[0]["id"] == debit["ledger_id"]


@pytest.mark.parametrize("amount", [0, -5, "abc", None])
def test_amount_must_be_positive(company_id, amount):
    with pytest.raises(WalletError, match="greater than 0"):
        add_to_wallet(company_id, amount)


def test_debit_cannot_overdraw(company_id):
    add_to_wallet(company_id, 100)
    with pytest.raises(InsufficientBalance):
        deduct_from_wallet(company_id, 100.01)
    assert get_wallet_balance(company_id)["balance"] == 100
    assert len(list_ledger(company_id)) == 1


def test_concurrent_debits_never_overdraw(company_id):
    add_to_wallet(company_id, 100)
    results = []

    def pay():
        results.append(process_wallet_payment(company_id, 20, "BK")["success"])

    threads = [threading.Thread(target=pay) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 5
    assert get_wallet_balance(company_id)["balance"] == 0


def test_process_payment_reports_failure(company_id):
    result = process_wallet_payment(company_id, 10, "BK-2")
    assert result == {"success": False, "message": "Insufficient wallet balance", "data": None}
    assert not has_sufficient_balance(company_id, 10)


def test_refund_restores_balance(company_id):
    add_to_wallet(company_id, 500)
    process_wallet_payment(company_id, 300, "BK-3")
    refund = refund_wallet_payment(company_id, 300, "BK-3")
    assert refund["new_balance"] == 500
    assert list_ledger(company_id, 1)[0]["reason"] == "Refund - BK-3"


def test_list_wallets_paginates(company_id):
    add_to_wallet(company_id, 10)
    rows, pagination = list_wallets(page=1, limit=10)
    assert pagination["total"] == 1
    assert rows[0]["wallet"]["balance"] == 10


def test_list_wallets_filters_by_status(company_id):
    rows, _ = list_wallets(status="Pending")
    assert [r["id"] for r in rows] == [company_id]
    rows, _ = list_wallets(status="verified")
    assert rows == []
    with pytest.raises(WalletError, match="Invalid status filter"):
        list_wallets(status="archived")
