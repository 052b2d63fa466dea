"""Estimate snapshot: bracket sum, deduction choice, lenient amount parsing."""
import pytest

from services.tax_estimate import compute_estimate, compute_tax, to_amount, TAX_CONFIG


def test_to_amount_is_lenient():
    assert to_amount("$12,500.50") == 12500.50
    assert to_amount("") == 0
    assert to_amount(None) == 0
    assert to_amount("n/a") == 0


def test_compute_tax_first_bracket_only():
    brackets = TAX_CONFIG[2025]["brackets"]["single"]
    assert compute_tax(10000, brackets) == pytest.approx(1000)


def test_compute_tax_spans_brackets():
    brackets = TAX_CONFIG[2025]["brackets"]["single"]
    expected = 11925 * 0.10 + (20000 - 11925) * 0.12
    assert compute_tax(20000, brackets) == pytest.approx(expected)


def test_single_2025_with_standard_deduction():
    estimate = compute_estimate({
        "filing_year": 2025,
        "filing_status": "single",
        "wages": 60000,
        "federal_withholding": 7000,
    })
    taxable = 60000 - 15750
    tax = 11925 * 0.10 + (taxable - 11925) * 0.12
    assert estimate["estimated_income"] == 60000
    assert estimate["estimated_taxable"] == taxable
    assert estimate["estimated_tax"] == pytest.approx(tax)
    assert estimate["estimated_refund"] == pytest.approx(7000 - tax)


def test_itemized_used_when_larger():
    estimate = compute_estimate({
        "filing_year": 2024,
        "filing_status": "married_joint",
        "wages": "100000",
        "mortgage": "25000",
        "charity": "10000",
    })
    assert estimate["estimated_taxable"] == 100000 - 35000


def test_hsa_is_above_the_line():
    estimate = compute_estimate({
        "filing_year": 2025,
        "filing_status": "single",
        "wages": 20000,
        "hsa": 4000,
    })
    assert estimate["estimated_taxable"] == 20000 - 4000 - 15750


def test_taxable_never_negative():
    estimate = compute_estimate({"filing_year": 2023, "filing_status": "single", "wages": 100})
    assert estimate["estimated_taxable"] == 0
    assert estimate["estimated_tax"] == 0


def test_unknown_year_has_no_snapshot():
    assert compute_estimate({"filing_year": 2019, "filing_status": "single"}) is None


def test_unknown_status_has_no_snapshot():
    assert compute_estimate({"filing_year": 2025, "filing_status": "widow"}) is None
