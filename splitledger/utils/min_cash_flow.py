"""
Min-Cash-Flow settlement suggestions

Given each member's net balance inside a group (positive: the member is owed
money, negative: the member owes money), produce a short list of transfers
that would bring every balance to zero.

The greedy strategy repeatedly pairs the largest debtor with the largest
creditor and moves the smaller of the two amounts. Each step clears at least
one side, so at most n - 1 transfers are produced for n non-zero balances.

Example:
    >>> min_cash_flow({"A": Decimal("80"), "B": Decimal("-10"), "C": Decimal("-70")})
    [{'from': 'C', 'to': 'A', 'amount': Decimal('70.00')},
     {'from': 'B', 'to': 'A', 'amount': Decimal('10.00')}]
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List

from splitledger.utils.money import EPSILON, round_decimal

logger = logging.getLogger(__name__)


def validate_balance_sum(balances: Dict[str, Decimal], tolerance: Decimal = EPSILON) -> None:
    """
    Check that balances are zero-sum within tolerance.

    Raises:
        ValueError: if money would be created or destroyed
    """
    total = sum(balances.values(), Decimal('0'))
    if abs(total) > tolerance:
        raise ValueError(f"Balances not zero-sum: total={total}, tolerance={tolerance}")


def balances_from_debts(debts: Iterable) -> Dict[str, Decimal]:
    """
    Net balance per user from directional debt rows.

    Anything with debtor_id, creditor_id and amount attributes works.
    """
    balances: Dict[str, Decimal] = {}
    for debt in debts:
        amount = Decimal(str(debt.amount))
        balances[debt.creditor_id] = balances.get(debt.creditor_id, Decimal('0')) + amount
        balances[debt.debtor_id] = balances.get(debt.debtor_id, Decimal('0')) - amount
    return {user_id: round_decimal(balance) for user_id, balance in balances.items()}


def min_cash_flow(balances: Dict[str, Decimal], tolerance: Decimal = EPSILON) -> List[Dict]:
    """
    Greedy minimal set of transfers settling all balances.

    Returns:
        [{"from": debtor_id, "to": creditor_id, "amount": Decimal}, ...]
        largest transfers first; ties are broken by user id so the output is
        deterministic.

    Raises:
        ValueError: if balances don't sum to zero within tolerance
    """
    if len(balances) < 2:
        return []

    validate_balance_sum(balances, tolerance)

    creditors = sorted(
        ((user_id, balance) for user_id, balance in balances.items() if balance > tolerance),
        key=lambda item: (-item[1], item[0]),
    )
    debtors = sorted(
        ((user_id, -balance) for user_id, balance in balances.items() if balance < -tolerance),
        key=lambda item: (-item[1], item[0]),
    )

    settlements = []
    i, j = 0, 0
    while i < len(debtors) and j < len(creditors):
        debtor_id, owes = debtors[i]
        creditor_id, owed = creditors[j]

        transfer = min(owes, owed)
        if transfer > tolerance:
            settlements.append({"from": debtor_id, "to": creditor_id, "amount": round_decimal(transfer)})

        owes = round_decimal(owes - transfer)
        owed = round_decimal(owed - transfer)
        debtors[i] = (debtor_id, owes)
        creditors[j] = (creditor_id, owed)

        if owes <= tolerance:
            i += 1
        if owed <= tolerance:
            j += 1

    logger.debug(f"Reduced {len(debtors)} debtors and {len(creditors)} creditors to {len(settlements)} transfers")
    return settlements
