"""
Customer Service - application intake, employee decisions and customer queries

STATES: DRAFT -> PENDING (customer submit) -> APPROVED | REJECTED (employee decision)
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

import auth_utils
import crud
from date_utils import end_of_day, parse_datetime, start_of_day, utcnow
from exceptions import AuthorizationError, NotFoundError, ValidationError
from models import AuditLog, Customer, RiskScore, User
from review_service import DEFAULT_INTERVAL_MONTHS, ReviewScheduler
from risk_service import calculate_risk_score, risk_level_for, score_bounds
from schemas import (
    CustomerCreate,
    CustomerDetail,
    CustomerListResponse,
    CustomerSearchRow,
    CustomerSummary,
    CustomerUpdate,
    RiskBreakdown,
    RiskScoreOut,
    ScheduledReview,
)

log = logging.getLogger(__name__)

MIN_REJECTION_REASON_LENGTH = 10
MAX_PAGE_SIZE = 100
SEARCH_LIMIT = 50

SORT_COLUMNS = {
    "name": (Customer.first_name, Customer.last_name),
    "registrationDate": (Customer.created_at,),
}
DEFAULT_SORT = "registrationDate"

PASSWORD_FIELDS = {"password", "currentPassword"}


def _customer_name(customer: Customer) -> str:
    return " ".join(part for part in (customer.first_name, customer.last_name) if part)


def _breakdown(risk: Optional[RiskScore]) -> Optional[RiskBreakdown]:
    if risk is None:
        return None
    return RiskBreakdown(
        age_factor=risk.age_factor,
        income_factor=risk.income_factor,
        employment_factor=risk.employment_factor,
        account_type_factor=risk.account_type_factor,
        deposit_factor=risk.deposit_factor,
    )


def _summary_fields(customer: Customer, email: Optional[str], risk: Optional[RiskScore]) -> dict:
    score = risk.score if risk is not None else None
    return {
        "id": customer.id,
        "customerName": _customer_name(customer),
        "email": email or "",
        "status": customer.status,
        "registrationDate": customer.created_at,
        "updated_at": customer.updated_at,
        "risk_score": score,
        "risk_level": risk_level_for(score),
        "risk_breakdown": _breakdown(risk),
    }


class CustomerService:
    """Service for customer applications and their lifecycle"""

    # -----------------------
    #  ACCESS
    # -----------------------
    @staticmethod
    def ensure_can_access(user: User, customer: Customer) -> None:
        """Employees see every customer, customers only their own record."""
        if auth_utils.is_employee(user):
            return
        if customer.user_id != user.id:
            log.warning(f"User {user.id} denied access to customer {customer.id}")
            raise AuthorizationError()

    @staticmethod
    async def get_accessible(db: AsyncSession, user: User, customer_id: int) -> Customer:
        customer = await crud.get_customer(db, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")
        CustomerService.ensure_can_access(user, customer)
        return customer

    # -----------------------
    #  LIFECYCLE
    # -----------------------
    @staticmethod
    async def create(db: AsyncSession, user: User, payload: CustomerCreate) -> Customer:
        """Open a DRAFT application for the calling customer and score it."""
        fields = payload.model_dump(exclude_unset=True)
        customer = await crud.create_customer(db, user.id, **fields)
        assessment = calculate_risk_score(customer)
        await crud.upsert_risk_score(db, customer.id, assessment.to_dict())
        log.info(f"Customer {customer.id} created by user {user.id} with risk score {assessment.score}")
        return customer

    @staticmethod
    async def submit(db: AsyncSession, user: User, customer_id: int) -> Customer:
        customer = await crud.get_customer(db, customer_id)
        if customer is None:
            raise NotFoundError("Not found")
        if customer.user_id != user.id:
            raise AuthorizationError()

        customer = await crud.update_customer(db, customer, status="PENDING", submitted_at=utcnow())
        log.info(f"Customer {customer.id} submitted for review")
        return customer

    @staticmethod
    async def update(db: AsyncSession, user: User, customer_id: int, payload: CustomerUpdate) -> Customer:
        """
        Update profile fields of a customer.

        A password change needs both `password` and `currentPassword`; the
        current password is checked against the owning user's hash. Password
        fields are never written to the customer row.
        """
        customer = await CustomerService.get_accessible(db, user, customer_id)

        if payload.password or payload.currentPassword:
            if not (payload.password and payload.currentPassword):
                raise ValidationError("Both password and currentPassword are required to change the password")
            owner = await crud.get_user(db, customer.user_id)
            if owner is None:
                raise NotFoundError("User not found")
            if not auth_utils.verify_password(payload.currentPassword, owner.password_hash):
                log.warning(f"Password change for user {owner.id} rejected: current password mismatch")
                raise AuthorizationError("Current password is incorrect")
            await crud.update_user_password(db, owner, auth_utils.get_password_hash(payload.password))
            log.info(f"Password changed for user {owner.id}")

        values = payload.model_dump(exclude_unset=True, exclude=PASSWORD_FIELDS)
        if values:
            customer = await crud.update_customer(db, customer, **values)
            log.info(f"Customer {customer.id} updated by user {user.id}: {sorted(values)}")
        return customer

    @staticmethod
    async def approve(
        db: AsyncSession,
        employee: User,
        customer_id: int,
        interval_months: int = DEFAULT_INTERVAL_MONTHS,
    ) -> Tuple[Customer, bool, List[ScheduledReview]]:
        """
        Approve a customer and run the review cascade.

        Returns:
            (customer, first review created, backfilled reviews)
        """
        customer = await crud.get_customer(db, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")

        customer = await crud.update_customer(
            db, customer, status="APPROVED", decision_date=utcnow(), approved_by=employee.id
        )
        log.info(f"Customer {customer.id} approved by employee {employee.id}")

        review_created, backfilled = await ReviewScheduler.on_customer_approved(db, customer, interval_months)
        return customer, review_created, backfilled

    @staticmethod
    async def reject(db: AsyncSession, employee: User, customer_id: int, reason: Optional[str]) -> Customer:
        reason = (reason or "").strip()
        if len(reason) < MIN_REJECTION_REASON_LENGTH:
            raise ValidationError(f"Reason required (min {MIN_REJECTION_REASON_LENGTH} chars)")

        customer = await crud.get_customer(db, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found")

        customer = await crud.update_customer(
            db, customer, status="REJECTED", decision_date=utcnow(), rejection_reason=reason
        )
        log.info(f"Customer {customer.id} rejected by employee {employee.id}")
        return customer

    # -----------------------
    #  RISK
    # -----------------------
    @staticmethod
    async def calculate_risk(db: AsyncSession, user: User, customer_id: int) -> RiskScore:
        customer = await CustomerService.get_accessible(db, user, customer_id)
        assessment = calculate_risk_score(customer)
        risk = await crud.upsert_risk_score(db, customer.id, assessment.to_dict())
        log.info(f"Risk score for customer {customer.id} recalculated: {assessment.score} ({assessment.risk_level})")
        return risk

    @staticmethod
    async def get_risk_score(db: AsyncSession, user: User, customer_id: int) -> RiskScoreOut:
        await CustomerService.get_accessible(db, user, customer_id)
        risk = await crud.get_risk_score(db, customer_id)
        if risk is None:
            raise NotFoundError("Not found")
        out = RiskScoreOut.model_validate(risk)
        # stored level may predate the current thresholds
        out.risk_level = risk_level_for(risk.score)
        return out

    # -----------------------
    #  QUERIES
    # -----------------------
    @staticmethod
    async def get_detail(db: AsyncSession, user: User, customer_id: int) -> CustomerDetail:
        row = await crud.get_customer_with_email(db, customer_id)
        if row is None:
            raise NotFoundError("Customer not found")
        customer, email = row
        CustomerService.ensure_can_access(user, customer)

        risk = await crud.get_risk_score(db, customer.id)
        return CustomerDetail(
            **_summary_fields(customer, email, risk),
            date_of_birth=customer.date_of_birth,
            phone=customer.phone,
            address_line1=customer.address_line1,
            city=customer.city,
            postal_code=customer.postal_code,
            country=customer.country,
            annual_income=customer.annual_income,
            employment_status=customer.employment_status,
            account_type=customer.account_type,
            initial_deposit=customer.initial_deposit,
            id_number=customer.id_number,
            rejection_reason=customer.rejection_reason,
            decision_date=customer.decision_date,
        )

    @staticmethod
    async def get_for_user(db: AsyncSession, user: User) -> Customer:
        customer = await crud.get_customer_by_user_id(db, user.id)
        if customer is None:
            raise NotFoundError("Application not found")
        return customer

    @staticmethod
    async def list_customers(
        db: AsyncSession,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        risk: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        q: Optional[str] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> CustomerListResponse:
        """
        Paginated, filtered customer list for employees.
        Filters and counting run in SQL, so `total` covers every matching row.
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        limit = min(limit, MAX_PAGE_SIZE)

        query = (
            select(Customer, User.email, RiskScore)
            .join(User, User.id == Customer.user_id)
            .outerjoin(RiskScore, RiskScore.customer_id == Customer.id)
        )

        if status and status.upper() != "ALL":
            query = query.where(Customer.status == status.upper())

        if risk and risk.upper() != "ALL":
            if risk.upper() == "UNKNOWN":
                query = query.where(RiskScore.id.is_(None))
            else:
                try:
                    lower, upper = score_bounds(risk)
                except ValueError:
                    raise ValidationError(f"Unknown risk level: {risk}")
                if lower is not None:
                    query = query.where(RiskScore.score >= lower)
                if upper is not None:
                    query = query.where(RiskScore.score < upper)

        start = CustomerService._parse_bound(date_from, "fromDate")
        if start is not None:
            query = query.where(Customer.created_at >= start_of_day(start))
        end = CustomerService._parse_bound(date_to, "toDate")
        if end is not None:
            query = query.where(Customer.created_at <= end_of_day(end))

        if q and q.strip():
            like = f"%{q.strip()}%"
            query = query.where(
                or_(Customer.first_name.ilike(like), Customer.last_name.ilike(like), User.email.ilike(like))
            )

        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()

        columns = SORT_COLUMNS.get(sort or DEFAULT_SORT, SORT_COLUMNS[DEFAULT_SORT])
        descending = (order or "desc").lower() != "asc"
        ordering = [column.desc() if descending else column.asc() for column in columns]
        ordering.append(Customer.id.desc() if descending else Customer.id.asc())

        result = await db.execute(query.order_by(*ordering).offset((page - 1) * limit).limit(limit))
        customers = [
            CustomerSummary(**_summary_fields(customer, email, risk_row))
            for customer, email, risk_row in result.all()
        ]

        return CustomerListResponse(
            customers=customers,
            total=total,
            page=page,
            totalPages=math.ceil(total / limit) if total else 0,
        )

    @staticmethod
    async def search(db: AsyncSession, q: Optional[str]) -> List[CustomerSearchRow]:
        """Quick lookup over name, email and id number, capped at 50 rows."""
        if not q or not q.strip():
            return []
        like = f"%{q.strip()}%"
        result = await db.execute(
            select(Customer, User.email, RiskScore.score)
            .join(User, User.id == Customer.user_id)
            .outerjoin(RiskScore, RiskScore.customer_id == Customer.id)
            .where(
                or_(
                    Customer.first_name.ilike(like),
                    Customer.last_name.ilike(like),
                    User.email.ilike(like),
                    Customer.id_number.ilike(like),
                )
            )
            .order_by(Customer.id)
            .limit(SEARCH_LIMIT)
        )
        return [
            CustomerSearchRow(
                id=customer.id,
                first_name=customer.first_name,
                last_name=customer.last_name,
                email=email,
                score=score,
            )
            for customer, email, score in result.all()
        ]

    @staticmethod
    async def history(db: AsyncSession, user: User, customer_id: int) -> List[AuditLog]:
        await CustomerService.get_accessible(db, user, customer_id)
        return await crud.get_entity_audit_trail(db, "CUSTOMER", customer_id)

    @staticmethod
    def _parse_bound(value: Optional[str], name: str) -> Optional[datetime]:
        if not value:
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValidationError(f"{name} must be an ISO-8601 date")
        return parsed
