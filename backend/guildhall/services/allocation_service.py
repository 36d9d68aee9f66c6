# Overview: Service-layer operations for compensation allocation runs and reporting.

"""
Compensation Allocation

WHY: Every period a fixed budget is split across the formal seats in
proportion to each holder's ledger points, then pulled into the per-person
[min_units, max_units] band without creating or destroying a single unit.

INVARIANTS (after allocate):
- sum(amount_units) == budget_total exactly.
- min_units <= amount_units <= max_units for every record.
- Holders are processed in user id order so identical inputs give identical output.

Configurations where seats * min_units > budget_total or seats * max_units <
budget_total cannot satisfy both invariants; they are rejected up front with
ConfigurationError instead of producing a best-effort result.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import AllocationRecord, User
from ..validation import ConfigurationError, ConflictError, ConsistencyError, NotFoundError, coerce_period
from . import audit_service, config_service, member_service, points_service
from .concurrency import atomic
from guildhall.time_utils import period_label, to_utc_z, utcnow


AUTO_REMARK = "Calculated automatically"


# -----------------------------------------------------------------------------
# Pure distribution steps
# -----------------------------------------------------------------------------

def distribute_pool(raw_units: list[int], budget: int) -> list[int]:
    """
    Proportional split of budget over raw_units.

    - total <= 0: even split; budget % n goes one unit each to the first holders.
    - otherwise: floor(raw * budget / total) for all but the last holder, the
      last takes whatever is left so the sum is exactly budget.
    """
    n = len(raw_units)
    if n == 0:
        return []

    total = sum(raw_units)
    if total <= 0:
        share, remainder = divmod(budget, n)
        return [share + (1 if i < remainder else 0) for i in range(n)]

    result = [raw * budget // total for raw in raw_units[:-1]]
    result.append(budget - sum(result))
    return result


def check_bounds_feasible(*, seats: int, budget: int, min_units: int, max_units: int) -> None:
    if min_units > max_units:
        raise ConfigurationError(f"min_units ({min_units}) exceeds max_units ({max_units})")
    if seats * min_units > budget:
        raise ConfigurationError(
            f"{seats} seats x min_units {min_units} = {seats * min_units} exceeds budget_total {budget}"
        )
    if seats * max_units < budget:
        raise ConfigurationError(
            f"{seats} seats x max_units {max_units} = {seats * max_units} is below budget_total {budget}"
        )


def _spread(values: list[int], capacity: list[int], amount: int, sign: int) -> bool:
    """
    Move amount units into (sign=+1) or out of (sign=-1) the holders with
    capacity > 0, proportionally to their capacity. Floor shares first, then
    one unit each to the first holders with capacity left.

    Returns False when nobody has capacity.
    """
    recipients = [i for i, cap in enumerate(capacity) if cap > 0]
    if not recipients:
        return False

    room = sum(capacity[i] for i in recipients)
    amount = min(amount, room)
    given = 0
    for i in recipients:
        share = amount * capacity[i] // room
        values[i] += sign * share
        capacity[i] -= share
        given += share

    remainder = amount - given
    for i in recipients:
        if remainder == 0:
            break
        if capacity[i] > 0:
            values[i] += sign
            capacity[i] -= 1
            remainder -= 1
    return True


def enforce_bounds(units: list[int], min_units: int, max_units: int) -> list[int]:
    """
    Pull every amount into [min_units, max_units] while keeping the sum.

    Each pass clamps amounts above the ceiling (surplus) and raises amounts
    below the floor (deficit). The net difference is then handed to holders
    still under the ceiling or taken back from holders above the floor, in
    proportion to the room each one has. At most 2 * n passes.
    """
    n = len(units)
    values = list(units)
    if n == 0:
        return values

    total = sum(values)
    check_bounds_feasible(seats=n, budget=total, min_units=min_units, max_units=max_units)

    for _ in range(2 * n):
        surplus = 0
        deficit = 0
        for i, value in enumerate(values):
            if value > max_units:
                surplus += value - max_units
                values[i] = max_units
            elif value < min_units:
                deficit += min_units - value
                values[i] = min_units

        if surplus == 0 and deficit == 0:
            break

        net = surplus - deficit
        if net > 0:
            if not _spread(values, [max_units - v for v in values], net, 1):
                break
        elif net < 0:
            if not _spread(values, [v - min_units for v in values], -net, -1):
                break

    if sum(values) != total or any(v < min_units or v > max_units for v in values):
        raise ConsistencyError(
            f"Bound enforcement failed: total {sum(values)} (expected {total}), "
            f"range [{min(values)}, {max(values)}] (expected [{min_units}, {max_units}])"
        )
    return values


def compute_units(raw_units: list[int], *, budget: int, min_units: int, max_units: int) -> list[int]:
    """distribute_pool followed by enforce_bounds."""
    check_bounds_feasible(seats=len(raw_units), budget=budget, min_units=min_units, max_units=max_units)
    return enforce_bounds(distribute_pool(raw_units, budget), min_units, max_units)


# -----------------------------------------------------------------------------
# Allocation runs
# -----------------------------------------------------------------------------

def allocate(period: str | None = None, actor_id: int | None = None) -> list[AllocationRecord]:
    """
    Compute and persist one AllocationRecord per formal-seat holder for period.

    An unarchived record for the same user and period is updated in place;
    unarchived records of users who no longer hold a seat are removed.
    """
    period = coerce_period(period) if period is not None else period_label()
    settings = config_service.allocation_settings()

    holders = member_service.formal_seat_holders()
    if len(holders) != settings.seat_count:
        raise ConfigurationError(
            f"Formal seat holders ({len(holders)}) do not match formal_seat_count ({settings.seat_count})"
        )

    archived = (
        db.session.query(AllocationRecord.id)
        .filter(AllocationRecord.period == period, AllocationRecord.archived.is_(True))
        .first()
    )
    if archived:
        raise ConflictError(f"Period {period} is already archived")

    components = [points_service.get_period_components(u.id, period) for u in holders]
    totals = [base + bonus - deduction for base, bonus, deduction in components]
    raw_units = [total * settings.points_to_units_ratio for total in totals]

    units = compute_units(
        raw_units,
        budget=settings.budget_total,
        min_units=settings.min_units,
        max_units=settings.max_units,
    )

    with atomic(f"allocation run for {period}"):
        existing = {
            r.user_id: r
            for r in db.session.query(AllocationRecord).filter(
                AllocationRecord.period == period,
                AllocationRecord.archived.is_(False),
            )
        }
        holder_ids = {u.id for u in holders}
        for user_id, stale in existing.items():
            if user_id not in holder_ids:
                db.session.delete(stale)

        records = []
        for user, (base, bonus, deduction), total, amount in zip(holders, components, totals, units):
            record = existing.get(user.id)
            if record is None:
                record = AllocationRecord(user_id=user.id, period=period)
                db.session.add(record)
            record.base_points = base
            record.bonus_points = bonus
            record.deduction_points = deduction
            record.total_points = total
            record.amount_units = amount
            record.currency_amount = Decimal(amount)
            record.remark = AUTO_REMARK
            records.append(record)

        audit_service.record(
            actor_user_id=actor_id,
            operation_type=audit_service.OP_ALLOCATION_CALCULATE,
            detail=audit_service.describe_users(f"Allocated period {period}", [u.id for u in holders]),
        )

    current_app.logger.info(
        "Allocated %s units across %s seats for %s", sum(units), len(records), period
    )
    return records


def list_records(period: str | None = None, archived: bool | None = None) -> list[AllocationRecord]:
    q = db.session.query(AllocationRecord)
    if period is not None:
        q = q.filter(AllocationRecord.period == coerce_period(period))
    if archived is not None:
        q = q.filter(AllocationRecord.archived.is_(archived))
    return q.order_by(AllocationRecord.period.desc(), AllocationRecord.user_id.asc()).all()


def archived_records_for(user_id: int, limit: int | None = None) -> list[AllocationRecord]:
    """Archived records for a user, newest first (archived_at, then id)."""
    q = (
        db.session.query(AllocationRecord)
        .filter(AllocationRecord.user_id == user_id, AllocationRecord.archived.is_(True))
        .order_by(AllocationRecord.archived_at.desc(), AllocationRecord.id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def generate_report() -> dict:
    """Summary of the open (unarchived) records against the budget."""
    records = list_records(archived=False)
    if not records:
        raise NotFoundError("No unarchived allocation records")

    users = {
        u.id: u
        for u in db.session.query(User).filter(User.id.in_({r.user_id for r in records}))
    }
    details = []
    allocated = 0
    for r in records:
        user = users.get(r.user_id)
        details.append({
            "user_id": r.user_id,
            "username": user.username if user else "unknown",
            "role": user.role if user else "unknown",
            "period": r.period,
            "base_points": r.base_points,
            "bonus_points": r.bonus_points,
            "deduction_points": r.deduction_points,
            "total_points": r.total_points,
            "amount_units": r.amount_units,
            "currency_amount": str(r.currency_amount),
            "remark": r.remark,
        })
        allocated += r.amount_units

    budget = config_service.allocation_settings().budget_total
    return {
        "generated_at": to_utc_z(utcnow()),
        "budget_total": budget,
        "allocated_total": allocated,
        "remaining_amount": budget - allocated,
        "details": details,
    }
