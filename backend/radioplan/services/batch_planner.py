"""Группировка заказов в партии с учётом распада.

Заказы группируются по продукту. Время старта партии считается назад от самой ранней
доставки группы (длительность производства + буфер QC/транспорта), чтобы успеть ко всем
заказам; самая поздняя доставка отдаётся как якорь группы (anchor_time). Требуемая
активность каждого заказа пересчитывается вперёд от общего старта до его собственной
доставки и суммируется: простая сумма запрошенных активностей дала бы недовыпуск.

Только чтение: ёмкость не резервируется, заказы и окна не меняются.
"""
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from radioplan.config import settings
from radioplan.models import Order, Product
from radioplan.schemas.planner import (
    BackwardScheduleOut,
    BatchSuggestion,
    PlannerOrder,
    ScheduleIssue,
    SuggestedOrder,
)
from radioplan.services import capacity_store, collaborators
from radioplan.services.decay import (
    BackwardSchedule,
    backward_schedule,
    decay_factor,
    elapsed_minutes,
    is_within_shelf_life,
    production_activity,
)

REASON_START_IN_PAST = "START_IN_PAST"
REASON_ACTIVITY_CEILING = "ACTIVITY_CEILING"
REASON_SHELF_LIFE = "SHELF_LIFE"


def product_timing(product: Product, travel_minutes: int = 0) -> tuple[int, int, int, int]:
    """(синтез, QC, упаковка, транспорт) в минутах.

    Если у продукта заданы этапы — используются они и время в пути заказчика;
    иначе длительность производства и общий буфер QC+транспорт.
    """
    if product.synthesis_minutes:
        return (
            product.synthesis_minutes,
            product.qc_minutes or 0,
            product.packaging_minutes or 0,
            travel_minutes,
        )
    buffer = product.transport_qc_buffer_minutes
    if buffer is None:
        buffer = settings.transport_qc_buffer_minutes
    return product.production_duration_minutes, 0, 0, buffer


def order_schedule(order: Order, product: Product, travel_minutes: int = 0) -> BackwardSchedule:
    synthesis, qc, packaging, travel = product_timing(product, travel_minutes)
    return backward_schedule(order.delivery_time_start, travel, packaging, qc, synthesis)


def _schedule_out(s: BackwardSchedule) -> BackwardScheduleOut:
    return BackwardScheduleOut(**s._asdict())


def suggest_for_group(
    product: Product,
    orders: Sequence[Order],
    now: datetime,
    travel_by_customer: Optional[Mapping[int, int]] = None,
    overage_percent: Optional[float] = None,
) -> BatchSuggestion:
    """Одна партия из заказов одного продукта."""
    travel_by_customer = travel_by_customer or {}
    overage = settings.production_overage_percent if overage_percent is None else overage_percent
    ordered = sorted(orders, key=lambda o: (o.delivery_time_start, o.id or 0))
    earliest = ordered[0].delivery_time_start
    latest = ordered[-1].delivery_time_start
    travel = max(travel_by_customer.get(o.customer_id, 0) for o in ordered)

    # Старт от самой ранней доставки: к ней партия тоже должна успеть
    synthesis, qc, packaging, travel = product_timing(product, travel)
    schedule = backward_schedule(earliest, travel, packaging, qc, synthesis)
    start = schedule.synthesis_start
    end = start + timedelta(minutes=synthesis)

    items: list[SuggestedOrder] = []
    for o in ordered:
        elapsed = elapsed_minutes(start, o.delivery_time_start)
        items.append(
            SuggestedOrder(
                order_id=o.id,
                order_number=o.order_number,
                customer_id=o.customer_id,
                requested_activity=o.requested_activity,
                delivery_time=o.delivery_time_start,
                decay_factor=decay_factor(product.half_life_minutes, elapsed),
                production_activity=production_activity(
                    o.requested_activity, product.half_life_minutes, start, o.delivery_time_start, overage
                ),
            )
        )
    total = sum(i.production_activity for i in items)

    issues: list[ScheduleIssue] = []
    if start < now:
        issues.append(ScheduleIssue(
            reason=REASON_START_IN_PAST,
            message=f"Старт {start:%Y-%m-%d %H:%M} уже прошёл: не хватает времени на производство",
        ))
    if product.max_batch_activity is not None and total > product.max_batch_activity:
        issues.append(ScheduleIssue(
            reason=REASON_ACTIVITY_CEILING,
            message=f"Суммарная активность {total:.2f} превышает предел партии {product.max_batch_activity:.2f}",
        ))
    if product.shelf_life_minutes:
        late = [
            o for o in ordered
            if not is_within_shelf_life(end, o.delivery_time_start, product.shelf_life_minutes)
        ]
        if late:
            issues.append(ScheduleIssue(
                reason=REASON_SHELF_LIFE,
                message="Срок годности истечёт до доставки заказов: "
                        + ", ".join(o.order_number for o in late),
            ))

    return BatchSuggestion(
        product_id=product.id,
        product_name=product.name or "",
        orders=items,
        order_ids=[o.id for o in ordered],
        order_count=len(ordered),
        requested_activity_total=sum(o.requested_activity for o in ordered),
        total_activity=total,
        activity_unit=ordered[0].activity_unit or "mCi",
        anchor_time=latest,
        earliest_delivery=earliest,
        latest_delivery=latest,
        suggested_start_time=start,
        suggested_end_time=end,
        production_minutes=synthesis,
        schedule=_schedule_out(schedule),
        feasible=not issues,
        issues=issues,
    )


def plan_batches(
    orders: Iterable[Order],
    products: Mapping[int, Product],
    now: datetime,
    travel_by_customer: Optional[Mapping[int, int]] = None,
    overage_percent: Optional[float] = None,
) -> list[BatchSuggestion]:
    """Предложения партий: по продукту, по возрастанию старта, крупные вперёд."""
    groups: dict[int, list[Order]] = defaultdict(list)
    for order in orders:
        groups[order.product_id].append(order)
    suggestions = [
        suggest_for_group(products[pid], group, now, travel_by_customer, overage_percent)
        for pid, group in groups.items()
        if pid in products
    ]
    suggestions.sort(key=lambda s: (s.suggested_start_time, -s.order_count))
    return suggestions


async def suggest_batches(db: AsyncSession, day: date, now: Optional[datetime] = None) -> list[BatchSuggestion]:
    orders = await collaborators.list_schedulable_orders(db, day)
    if not orders:
        return []
    products = await collaborators.get_products(db, (o.product_id for o in orders))
    travel = await collaborators.travel_minutes_by_customer(db, (o.customer_id for o in orders))
    suggestions = plan_batches(orders, products, now or datetime.utcnow(), travel)
    for s in suggestions:
        window = await capacity_store.find_window_at(db, s.suggested_start_time)
        s.window_id = window.id if window else None
    return suggestions


async def planner_orders(db: AsyncSession, day: date) -> list[PlannerOrder]:
    """Заказы к планированию с индивидуальным обратным расчётом."""
    orders = await collaborators.list_schedulable_orders(db, day)
    products = await collaborators.get_products(db, (o.product_id for o in orders))
    travel = await collaborators.travel_minutes_by_customer(db, (o.customer_id for o in orders))
    out = []
    for o in orders:
        product = products.get(o.product_id)
        if product is None:
            continue
        out.append(PlannerOrder(
            order_id=o.id,
            order_number=o.order_number,
            product_id=o.product_id,
            customer_id=o.customer_id,
            requested_activity=o.requested_activity,
            activity_unit=o.activity_unit,
            delivery_time_start=o.delivery_time_start,
            delivery_time_end=o.delivery_time_end,
            status=o.status.value,
            schedule=_schedule_out(order_schedule(o, product, travel.get(o.customer_id, 0))),
        ))
    return out
