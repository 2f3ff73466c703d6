"""
Dashboard Service - read-only application statistics for employees
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from date_utils import add_months, end_of_day, month_periods, parse_datetime, start_of_day, today, utcnow
from exceptions import ValidationError
from models import Customer, Review, RiskScore
from risk_service import risk_level_for
from schemas import DashboardStatistics, RiskBucket, RiskDetail, RiskDistribution, TrendPoint

log = logging.getLogger(__name__)

DEFAULT_WINDOW_MONTHS = 6


def _percent(count: int, total: int) -> float:
    return round(count / (total or 1) * 100, 2)


class DashboardService:

    @staticmethod
    def resolve_window(
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[datetime, datetime]:
        """
        Statistics window: [start of `from`, end of `to`].
        Defaults to the end of today; a missing `from` falls six months before `to`.
        """
        now = now or utcnow()
        start = parse_datetime(date_from) if date_from else None
        if date_from and start is None:
            raise ValidationError("from must be an ISO-8601 date")
        end = parse_datetime(date_to) if date_to else None
        if date_to and end is None:
            raise ValidationError("to must be an ISO-8601 date")

        if start is None:
            six_months_ago = add_months((end or now).date(), -DEFAULT_WINDOW_MONTHS)
            start = datetime.combine(six_months_ago, datetime.min.time())
        start = start_of_day(start)
        end = end_of_day(end or now)
        if end < start:
            raise ValidationError("from must not be after to")
        return start, end

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DashboardStatistics:
        start, end = DashboardService.resolve_window(date_from, date_to, now)
        log.info(f"Fetching dashboard statistics from {start.isoformat()} to {end.isoformat()}")

        result = await db.execute(
            select(Customer.id, Customer.status, Customer.created_at, RiskScore.score, RiskScore.calculated_at)
            .outerjoin(RiskScore, RiskScore.customer_id == Customer.id)
            .where(Customer.created_at >= start, Customer.created_at <= end)
            .order_by(Customer.id)
        )
        rows = result.all()

        total = len(rows)
        statuses = [(row.status or "").upper() for row in rows]
        pending = statuses.count("PENDING")
        approved = statuses.count("APPROVED")
        rejected = statuses.count("REJECTED")
        approval_rate = round(approved / total * 100, 2) if total else 0

        counters = {"LOW": 0, "MEDIUM": 0, "HIGH": 0, "UNKNOWN": 0}
        risk_details = []
        for row in rows:
            level = risk_level_for(row.score)
            counters[level] += 1
            risk_details.append(
                RiskDetail(
                    customer_id=row.id,
                    risk_score=row.score,
                    risk_level=level,
                    calculated_at=row.calculated_at,
                )
            )

        distribution = RiskDistribution(
            **{
                level.lower(): RiskBucket(count=count, percent=_percent(count, total))
                for level, count in counters.items()
            }
        )

        per_month = {}
        for row in rows:
            period = row.created_at.strftime("%Y-%m")
            per_month[period] = per_month.get(period, 0) + 1
        trends = [
            TrendPoint(period=period, count=per_month.get(period, 0))
            for period in month_periods(start.date(), end.date())
        ]

        overdue = (
            await db.execute(
                select(func.count(Review.id)).where(
                    Review.next_review_date <= (now.date() if now else today()),
                    Review.status != "COMPLETED",
                )
            )
        ).scalar_one()

        log.info(
            f"Dashboard: {total} applications, {pending} pending, {approved} approved, "
            f"{rejected} rejected, {overdue} overdue review(s)"
        )

        return DashboardStatistics(
            totalApplications=total,
            pending=pending,
            approved=approved,
            rejected=rejected,
            approvalRate=approval_rate,
            riskDistribution=distribution,
            riskDetails=risk_details,
            trendsData=trends,
            overdueReviews=overdue,
            from_=start,
            to=end,
        )
