from __future__ import annotations

PLAN_BASIC = "BASIC"
PLAN_PRO = "PRO"
PLAN_VIP = "VIP"

PLANS = (PLAN_BASIC, PLAN_PRO, PLAN_VIP)

STATUS_ACTIVE = "ACTIVE"
STATUS_INACTIVE = "INACTIVE"

# Checked in order; first substring found in the product/plan name wins.
PLAN_RULES: tuple[tuple[str, str], ...] = (
    ("vip", PLAN_VIP),
    ("pro", PLAN_PRO),
)

DEFAULT_PLAN = PLAN_BASIC


def _first_name(*candidates: object) -> str:
    for candidate in candidates:
        if candidate is None:
            continue
        text = str(candidate).strip()
        if text:
            return text
    return ""


def classify_plan(product_name: object = None, plan_name: object = None) -> str:
    """
    Product name takes precedence; the subscription plan name is only
    consulted when the product name is blank.
    """
    name = _first_name(product_name, plan_name).lower()
    for token, plan in PLAN_RULES:
        if token in name:
            return plan
    return DEFAULT_PLAN
