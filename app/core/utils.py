from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import Dict, List, Optional, Tuple
from collections import deque

getcontext().prec = 28
CENTS = Decimal("0.01")
DEFAULT_TOLERANCE = Decimal("0.01")
DEFAULT_WARNING_PERCENT = Decimal("80")
ZERO = Decimal("0")


def qround(d: Decimal) -> Decimal:
    # ROUND_HALF_UP rounds ties away from zero, negatives included
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def within_tolerance(a: Decimal, b: Decimal, eps: Decimal = DEFAULT_TOLERANCE) -> bool:
    return abs(a - b) <= eps


def simplify_debts(net_map: Dict[int, Decimal]):
    creditors = []
    debtors = []

    for uid, bal in net_map.items():
        if bal > 0:
            creditors.append([uid, bal])
        elif bal < 0:
            debtors.append([uid, -bal])

    # uid breaks ties so the plan is stable across calls
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    creditors = deque(creditors)
    debtors = deque(debtors)

    transfers: List[Tuple[int, int, Decimal]] = []

    while creditors and debtors:
        cred_id, cred_amt = creditors[0]
        debt_id, debt_amt = debtors[0]

        pay_amt = qround(min(cred_amt, debt_amt))

        # sub-cent leftovers on both sides
        if pay_amt <= ZERO:
            break

        transfers.append((debt_id, cred_id, pay_amt))

        new_cred = qround(cred_amt - pay_amt)
        new_debt = qround(debt_amt - pay_amt)

        creditors.popleft()
        debtors.popleft()

        if new_cred > ZERO:
            creditors.appendleft([cred_id, new_cred])
        if new_debt > ZERO:
            debtors.appendleft([debt_id, new_debt])
    return transfers


def classify_budget(
    percent_used: Optional[Decimal],
    warning_percent: Decimal = DEFAULT_WARNING_PERCENT
) -> Optional[str]:
    if percent_used is None:
        return None
    if percent_used >= 100:
        return "exceeded"
    if percent_used >= warning_percent:
        return "warning"
    return "ok"
