"""
Credit ledger: grants, consumptions with per-grant draws, and refunds.

consume() must be called inside the transaction that creates the task it
pays for, so a task row never exists without its consumption (and vice versa).
"""

from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from extraction.models import CreditDraw, CreditEntry


class InsufficientCredits(Exception):
    """Raised when the spendable balance does not cover the requested amount"""

    def __init__(self, required, available):
        super().__init__(f'Insufficient credits: required {required}, available {available}')
        self.required = required
        self.available = available


def _spendable_grants(owner, now):
    return CreditEntry.objects.filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=now),
        owner=owner,
        kind=CreditEntry.KIND_GRANT,
        status=CreditEntry.STATUS_ACTIVE,
        remaining__gt=0,
    )


def spendable_balance(owner, now=None):
    """Sum of remaining credits over active, unexpired grants"""
    now = now or timezone.now()
    total = _spendable_grants(owner, now).aggregate(total=Sum('remaining'))['total']
    return total or 0


def grant(owner, amount, expires_at=None, description=''):
    """Add a credit grant for owner"""
    if amount <= 0:
        raise ValueError('Grant amount must be positive')
    return CreditEntry.objects.create(
        owner=owner,
        kind=CreditEntry.KIND_GRANT,
        amount=amount,
        remaining=amount,
        expires_at=expires_at,
        scene=CreditEntry.SCENE_GRANT,
        description=description,
    )


def consume(owner, amount, scene=CreditEntry.SCENE_TASK_COST, description=''):
    """
    Draw amount from owner's grants, oldest-expiring first.

    Grants without an expiry are drawn last. The selected grants are locked
    for the rest of the enclosing transaction.

    Returns:
        CreditEntry: the consumption entry

    Raises:
        InsufficientCredits: nothing is drawn
    """
    if amount <= 0:
        raise ValueError('Consumption amount must be positive')

    now = timezone.now()
    with transaction.atomic():
        grants = list(
            _spendable_grants(owner, now)
            .select_for_update()
            .order_by(F('expires_at').asc(nulls_last=True), 'created_at', 'id')
        )
        available = sum(g.remaining for g in grants)
        if available < amount:
            raise InsufficientCredits(amount, available)

        consumption = CreditEntry.objects.create(
            owner=owner,
            kind=CreditEntry.KIND_CONSUMPTION,
            amount=-amount,
            remaining=0,
            scene=scene,
            description=description,
        )

        outstanding = amount
        for g in grants:
            if outstanding == 0:
                break
            take = min(g.remaining, outstanding)
            CreditEntry.objects.filter(pk=g.pk).update(remaining=F('remaining') - take)
            CreditDraw.objects.create(consumption=consumption, grant=g, amount=take)
            outstanding -= take

    return consumption


def refund(consumption_id):
    """
    Reverse a consumption and restore each draw to its grant.

    Only the caller that flips the entry from active to reversed restores
    credits, so repeated or concurrent calls refund at most once.

    Returns:
        bool: True if this call performed the refund
    """
    if consumption_id is None:
        return False

    with transaction.atomic():
        flipped = CreditEntry.objects.filter(
            pk=consumption_id,
            kind=CreditEntry.KIND_CONSUMPTION,
            status=CreditEntry.STATUS_ACTIVE,
        ).update(status=CreditEntry.STATUS_REVERSED)
        if not flipped:
            return False

        for draw in CreditDraw.objects.filter(consumption_id=consumption_id):
            CreditEntry.objects.filter(pk=draw.grant_id).update(
                remaining=F('remaining') + draw.amount
            )
    return True
