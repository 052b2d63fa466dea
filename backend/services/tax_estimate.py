"""Federal estimate snapshot stored with each intake (bracket lookup + sum)."""
import math
import re
from typing import Any, Dict, Optional

INF = math.inf

TAX_CONFIG: Dict[int, Dict[str, Any]] = {
    2025: {
        "standard_deduction": {
            "single": 15750,
            "married_joint": 31500,
            "married_separate": 15750,
            "head_household": 23625,
        },
        "brackets": {
            "single": [(11925, 0.10), (48475, 0.12), (103350, 0.22), (197300, 0.24), (250525, 0.32), (626350, 0.35), (INF, 0.37)],
            "married_joint": [(23850, 0.10), (96950, 0.12), (206700, 0.22), (394600, 0.24), (501050, 0.32), (751600, 0.35), (INF, 0.37)],
            "married_separate": [(11925, 0.10), (48475, 0.12), (103350, 0.22), (197300, 0.24), (250525, 0.32), (375800, 0.35), (INF, 0.37)],
            "head_household": [(17000, 0.10), (64850, 0.12), (103350, 0.22), (197300, 0.24), (250500, 0.32), (626350, 0.35), (INF, 0.37)],
        },
    },
    2024: {
        "standard_deduction": {
            "single": 14600,
            "married_joint": 29200,
            "married_separate": 14600,
            "head_household": 21900,
        },
        "brackets": {
            "single": [(11600, 0.10), (47150, 0.12), (100525, 0.22), (191950, 0.24), (243725, 0.32), (609350, 0.35), (INF, 0.37)],
            "married_joint": [(23200, 0.10), (94300, 0.12), (201050, 0.22), (383900, 0.24), (487450, 0.32), (731200, 0.35), (INF, 0.37)],
            "married_separate": [(11600, 0.10), (47150, 0.12), (100525, 0.22), (191950, 0.24), (243725, 0.32), (365600, 0.35), (INF, 0.37)],
            "head_household": [(16550, 0.10), (63100, 0.12), (100500, 0.22), (191950, 0.24), (243700, 0.32), (609350, 0.35), (INF, 0.37)],
        },
    },
    2023: {
        "standard_deduction": {
            "single": 13850,
            "married_joint": 27700,
            "married_separate": 13850,
            "head_household": 20800,
        },
        "brackets": {
            "single": [(11000, 0.10), (44725, 0.12), (95375, 0.22), (182100, 0.24), (231250, 0.32), (578125, 0.35), (INF, 0.37)],
            "married_joint": [(22000, 0.10), (89450, 0.12), (190750, 0.22), (364200, 0.24), (462500, 0.32), (693750, 0.35), (INF, 0.37)],
            "married_separate": [(11000, 0.10), (44725, 0.12), (95375, 0.22), (182100, 0.24), (231250, 0.32), (346875, 0.35), (INF, 0.37)],
            "head_household": [(15700, 0.10), (59850, 0.12), (95350, 0.22), (182100, 0.24), (231250, 0.32), (578100, 0.35), (INF, 0.37)],
        },
    },
    2022: {
        "standard_deduction": {
            "single": 12950,
            "married_joint": 25900,
            "married_separate": 12950,
            "head_household": 19400,
        },
        "brackets": {
            "single": [(10275, 0.10), (41775, 0.12), (89075, 0.22), (170050, 0.24), (215950, 0.32), (539900, 0.35), (INF, 0.37)],
            "married_joint": [(20550, 0.10), (83550, 0.12), (178150, 0.22), (340100, 0.24), (431900, 0.32), (647850, 0.35), (INF, 0.37)],
            "married_separate": [(10275, 0.10), (41775, 0.12), (89075, 0.22), (170050, 0.24), (215950, 0.32), (323925, 0.35), (INF, 0.37)],
            "head_household": [(14650, 0.10), (55900, 0.12), (89050, 0.22), (170050, 0.24), (215950, 0.32), (539900, 0.35), (INF, 0.37)],
        },
    },
}

_AMOUNT_CHARS = re.compile(r"[^0-9.\-]")


def to_amount(value) -> float:
    """Lenient money parse: "$12,500" -> 12500.0; junk -> 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    cleaned = _AMOUNT_CHARS.sub("", str(value))
    if not cleaned:
        return 0.0
    try:
        amount = float(cleaned)
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def compute_tax(income: float, brackets) -> float:
    if not brackets or income <= 0:
        return 0.0
    tax = 0.0
    last_cap = 0.0
    for cap, rate in brackets:
        if income <= last_cap:
            break
        tax += (min(income, cap) - last_cap) * rate
        last_cap = cap
    return tax


def compute_estimate(data: Dict[str, Any]) -> Optional[Dict[str, float]]:
    """Estimate snapshot, or None when the year/status has no bracket table."""
    try:
        year = int(data.get("filing_year"))
    except (TypeError, ValueError):
        return None
    status = str(data.get("filing_status") or "")
    config = TAX_CONFIG.get(year)
    if not config or status not in config["brackets"]:
        return None

    total_income = sum(
        to_amount(data.get(key))
        for key in ("wages", "income_1099", "investment_income", "retirement")
    )
    itemized = sum(to_amount(data.get(key)) for key in ("mortgage", "charity", "student_loan"))
    deduction = max(config["standard_deduction"].get(status, 0), itemized)
    taxable_income = max(0.0, total_income - to_amount(data.get("hsa")) - deduction)
    estimated_tax = compute_tax(taxable_income, config["brackets"][status])
    withheld = to_amount(data.get("federal_withholding"))

    return {
        "estimated_income": total_income,
        "estimated_taxable": taxable_income,
        "estimated_tax": estimated_tax,
        "estimated_withholding": withheld,
        "estimated_refund": withheld - estimated_tax,
    }
