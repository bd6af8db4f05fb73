import pytest

from packages.features.accounts.accounts import complete_company_signup, create_temp_company, get_company
from packages.features.pricing.markups import (
    MarkupNotFound,
    build_pricing,
    calculate_markup,
    cancellation_charge,
    create_markup,
    delete_markup,
    markup_for_hotel,
    price_package,
    update_markup,
)
from packages.features.pricing.pricing import (
    PricingError,
    apply_charge,
    create_config,
    get_config,
    set_company_markup,
    toggle_company_markup,
    update_config,
    validate_charge,
)

CONFIG = {
    "markup": {"type": "percentage", "value": 10},
    "service_charge": {"type": "fixed", "value": 50},
    "processing_fee": 20,
    "cancellation_charge": {"type": "percentage", "value": 5},
}


def test_apply_charge():
    assert apply_charge(1000, "percentage", 10) == 100
    assert apply_charge(1000, "fixed", 75) == 75
    with pytest.raises(PricingError):
        apply_charge(1000, "bogus", 1)


@pytest.mark.parametrize(
    "rule, message",
    [
        ({"type": "percentage", "value": 101}, "between 0 and 100"),
        ({"type": "fixed", "value": -1}, "greater than or equal to 0"),
        ({"type": "flat", "value": 1}, "either"),
        ({"type": "fixed"}, "value is required"),
        ("10%", "must be an object"),
    ],
)
def test_validate_charge_rejects(rule, message):
    with pytest.raises(PricingError, match=message):
        validate_charge(rule)


def test_create_config_requires_every_field():
    with pytest.raises(PricingError, match="All fields are required"):
        create_config({"markup": {"type": "fixed", "value": 1}})


def test_create_config_twice_keeps_created_at():
    first = create_config(CONFIG, created_by="adm_1")
    second = create_config(dict(CONFIG, processing_fee=30), created_by="adm_2")
    assert second["created_at"] == first["created_at"]
    assert second["created_by"] == "adm_1"
    assert second["updated_by"] == "adm_2"
    assert get_config()["processing_fee"] == 30


def test_update_config_merges_partial_values():
    create_config(CONFIG)
    cfg = update_config({"markup": {"value": 12}})
    assert cfg["markup"] == {"type": "percentage", "value": 12.0}
    assert cfg["service_charge"]["value"] == 50


def test_update_config_without_config():
    with pytest.raises(PricingError, match="Create it first"):
        update_config({"processing_fee": 1})


def test_calculate_markup_without_any_configuration():
    with pytest.raises(MarkupNotFound):
        calculate_markup(500)
    relaxed = calculate_markup(500, strict=False)
    assert relaxed["final_amount"] == 500


def test_calculate_markup_rejects_non_positive_amount():
    with pytest.raises(PricingError, match="Valid amount is required"):
        calculate_markup(0)


def test_markup_precedence_hotel_then_global_then_config():
    create_config(CONFIG)
    assert calculate_markup(1000, hotel_id="h-1")["markup"]["amount"] == 100

    create_markup({"name": "All hotels", "type": "fixed", "value": 40}, created_by="adm")
    assert calculate_markup(1000, hotel_id="h-1")["markup"]["amount"] == 40

    hotel_rule = create_markup({"name": "Hotel One", "type": "percentage", "value": 20, "hotel_id": "h-1"}, created_by="adm")
    result = calculate_markup(1000, hotel_id="h-1")
    assert result["markup"]["amount"] == 200
    assert result["final_amount"] == 1200
    # Other hotels still use the global rule.
    assert calculate_markup(1000, hotel_id="h-2")["markup"]["amount"] == 40

    update_markup(hotel_rule["id"], {"is_active": False})
    assert markup_for_hotel("h-1")["name"] == "All hotels"


def test_one_markup_rule_per_hotel():
    create_markup({"name": "A", "type": "fixed", "value": 1, "hotel_id": "h-9"}, created_by="adm")
    with pytest.raises(PricingError, match="already exists"):
        create_markup({"name": "B", "type": "fixed", "value": 2, "hotel_id": "h-9"}, created_by="adm")


def test_delete_missing_markup():
    with pytest.raises(MarkupNotFound):
        delete_markup("mk_missing")


def _company():
    temp = create_temp_company("9111111111")
    company = complete_company_signup(temp["id"], "Owner", "Agency", 2, "secret123")
    return company


def test_build_pricing_adds_fees_and_agency_markup():
    create_config(CONFIG)
    company = _company()
    set_company_markup(company["id"], {"type": "fixed", "value": 30, "is_active": True})
    pricing = build_pricing(1000, "INR", "h-1", get_company(company["id"]))
    assert pricing["markup_amount"] == 100
    assert pricing["service_component"] == 50
    assert pricing["processing_fee"] == 20
    assert pricing["company_markup_amount"] == 30
    assert pricing["total_chargeable_amount"] == 1200

    toggle_company_markup(company["id"], False)
    pricing = build_pricing(1000, "INR", "h-1", get_company(company["id"]))
    assert pricing["company_markup_amount"] == 0
    assert pricing["total_chargeable_amount"] == 1170


def test_build_pricing_requires_a_price():
    with pytest.raises(PricingError):
        build_pricing(None)


def test_price_package_and_cancellation_charge():
    create_config(CONFIG)
    priced = price_package({"booking_key": "bk", "chargeable_rate": 2000}, "h-1", None)
    assert priced["supplier_rate"] == 2000
    assert priced["chargeable_rate"] == 2000 + 200 + 50 + 20
    assert cancellation_charge(2000) == 100
