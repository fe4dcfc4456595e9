"""Payout and forfeiture amounts for settled commitments."""
from .schemas import CommitmentResponse, Settlement


def payout_amount(commitment: CommitmentResponse) -> float:
    """Stake returned plus bonus, owed on completion."""
    return commitment.stake + (commitment.bonus or 0)


def loss_amount(commitment: CommitmentResponse) -> float:
    """Stake forfeited on failure."""
    return commitment.stake


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


def default_bonus(stake: float) -> float:
    """Bonus offered at setup when none is given explicitly."""
    if stake >= 100:
        return 20.0
    if stake >= 50:
        return 10.0
    return 5.0


def settlement_for(commitment: CommitmentResponse) -> Settlement:
    """Report what the payment collaborator should execute for this commitment."""
    settlement = Settlement(
        commitment_id=commitment.id,
        status=commitment.status,
        payout_status=commitment.payout_status,
    )
    if commitment.status == "completed":
        amount = payout_amount(commitment)
        settlement.payout_amount = amount
        settlement.amount_cents = to_cents(amount)
    elif commitment.status == "failed":
        settlement.loss_amount = loss_amount(commitment)
    return settlement
