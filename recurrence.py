import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import get_settings
from models import IntervalUnit, RecurringTransaction, Transaction

logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: date, months: int, *, desired_day: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(desired_day, days_in_month(year, month)))


def calculate_next_date(template: RecurringTransaction, from_date: date) -> date:
    count = template.interval_count
    if template.interval_unit == IntervalUnit.day:
        return from_date + timedelta(days=count)
    if template.interval_unit == IntervalUnit.week:
        return from_date + timedelta(weeks=count)
    if template.interval_unit == IntervalUnit.month:
        return _add_months(from_date, count, desired_day=template.anchor_date.day)
    return _add_months(from_date, 12 * count, desired_day=template.anchor_date.day)


class RecurringEngine:
    max_iterations = 366

    def __init__(self, session: Session) -> None:
        self.session = session

    def catch_up(self, template: RecurringTransaction, today: date) -> int:
        posted = 0
        iterations = 0
        while template.next_date <= today and iterations < self.max_iterations:
            if template.end_date and template.next_date > template.end_date:
                template.active = False
                break
            occurrence = template.next_date
            if self._post_occurrence(template, occurrence):
                posted += 1
            template.next_date = calculate_next_date(template, occurrence)
            iterations += 1
        return posted

    def post_due(self, today: Optional[date] = None, user_id: Optional[int] = None) -> int:
        today = today or local_today()
        stmt = (
            select(RecurringTransaction)
            .where(
                RecurringTransaction.active.is_(True),
                RecurringTransaction.next_date <= today,
            )
            .order_by(RecurringTransaction.next_date, RecurringTransaction.id)
        )
        if user_id is not None:
            stmt = stmt.where(RecurringTransaction.user_id == user_id)
        templates = self.session.scalars(stmt).all()
        posted = 0
        for template in templates:
            posted += self.catch_up(template, today)
        self.session.commit()
        if posted:
            logger.info(f"recurring_posted: count={posted} templates={len(templates)}")
        return posted

    def _post_occurrence(self, template: RecurringTransaction, occurrence: date) -> bool:
        from services import recalculate_budget_spent

        existing = self.session.execute(
            select(Transaction.id)
            .where(
                Transaction.recurring_id == template.id,
                Transaction.date == occurrence,
            )
            .limit(1)
        ).scalar_one_or_none()
        if existing:
            return False

        txn = Transaction(
            user_id=template.user_id,
            category_id=template.category_id,
            amount_cents=template.amount_cents,
            description=template.description,
            date=occurrence,
            is_recurring=True,
            recurring_id=template.id,
        )
        self.session.add(txn)
        self.session.flush()
        recalculate_budget_spent(
            self.session, template.user_id, template.category_id, occurrence
        )
        return True
