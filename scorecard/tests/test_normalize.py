import pytest

from scorecard.utils.normalize import normalize_key, normalize_lob, normalize_product_type, normalize_sales_rep


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Thermal Unit", "Thermal"),
        ("power-module", "Power"),
        ("SaskPower UPS", "Power"),
        ("Thermal Power Unit", "Thermal"),
        ("CHANNEL sales", "Channel"),
        ("Field Service", "Service"),
        ("Batteries", "Batts & Caps"),
        ("caps", "Batts & Caps"),
        ("Racks", "Racks"),
        ("", "Other"),
        (None, "Other"),
    ],
)
def test_normalize_product_type(raw, expected):
    assert normalize_product_type(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("Thermal", "Thermal"), ("service dept", "Service"), ("Racks", "Other"), ("  ", "Other"), (None, "Other")],
)
def test_normalize_lob_defaults_to_other(raw, expected):
    assert normalize_lob(raw) == expected


def test_normalize_sales_rep_trims_and_defaults():
    assert normalize_sales_rep("  Mark ") == "Mark"
    assert normalize_sales_rep("") == "Unknown"
    assert normalize_sales_rep(None) == "Unknown"


def test_normalize_key_variants():
    cases = {
        None: "",
        "AnnualTarget": "annualtarget",
        " Annual_Target ": "annual target",
        "Annual-Target": "annual target",
    }
    for raw, expected in cases.items():
        assert normalize_key(raw) == expected
