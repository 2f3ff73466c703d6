from fastapi import APIRouter, Query, Request, status
from typing import Annotated, Optional
import logging

from customer_service import CustomerService
from deps import AuditDep, CurrentUserDep, CustomerDep, EmployeeDep, SessionDep, SettingsDep
from exceptions import OnboardingError
from schemas import (
    AuditLogOut,
    CustomerCreate,
    CustomerDetail,
    CustomerListResponse,
    CustomerOut,
    CustomerSearchResponse,
    CustomerUpdate,
    DecisionResponse,
    HistoryResponse,
    RejectRequest,
    RiskScoreEnvelope,
    RiskScoreOut,
)

customers_router = APIRouter(prefix="/customers", tags=["customers"])
log = logging.getLogger(__name__)


@customers_router.get("", response_model=CustomerListResponse)
async def list_customers(
    db_session: SessionDep,
    current_user: EmployeeDep,
    audit: AuditDep,
    request: Request,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 10,
    status_filter: Annotated[Optional[str], Query(alias="status")] = None,
    risk: Optional[str] = None,
    fromDate: Optional[str] = None,
    toDate: Optional[str] = None,
    q: Optional[str] = None,
    sort: Optional[str] = None,
    order: Optional[str] = None,
):
    """
    Employee customer list.

    - status: DRAFT | PENDING | APPROVED | REJECTED | ALL
    - risk: LOW | MEDIUM | HIGH | UNKNOWN | ALL
    - fromDate / toDate: registration date range
    - q: matches first name, last name or email
    - sort: name | registrationDate, order: asc | desc
    """
    try:
        result = await CustomerService.list_customers(
            db_session,
            page=page,
            limit=limit,
            status=status_filter,
            risk=risk,
            date_from=fromDate,
            date_to=toDate,
            q=q,
            sort=sort,
            order=order,
        )
    except OnboardingError as e:
        await audit.log_action("GET_CUSTOMERS", "CUSTOMER", result="FAILURE", details=e.message, user=current_user, request=request)
        raise
    await audit.log_action("GET_CUSTOMERS", "CUSTOMER", user=current_user, request=request)
    return result


@customers_router.get("/search", response_model=CustomerSearchResponse)
async def search_customers(db_session: SessionDep, current_user: EmployeeDep, q: Optional[str] = None):
    customers = await CustomerService.search(db_session, q)
    return CustomerSearchResponse(customers=customers, count=len(customers))


@customers_router.get("/me", response_model=CustomerOut)
async def get_my_application(db_session: SessionDep, current_user: CustomerDep):
    return await CustomerService.get_for_user(db_session, current_user)


@customers_router.get("/{customer_id}", response_model=CustomerDetail)
async def get_customer(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    return await CustomerService.get_detail(db_session, current_user, customer_id)


@customers_router.post("", status_code=status.HTTP_201_CREATED, response_model=CustomerOut)
async def create_application(
    payload: CustomerCreate,
    db_session: SessionDep,
    current_user: CustomerDep,
    audit: AuditDep,
    request: Request,
):
    customer = await CustomerService.create(db_session, current_user, payload)
    await audit.log_action("CREATE_APPLICATION", "CUSTOMER", customer.id, user=current_user, request=request)
    return customer


@customers_router.post("/{customer_id}/submit", response_model=CustomerOut)
async def submit_application(
    customer_id: int,
    db_session: SessionDep,
    current_user: CustomerDep,
    audit: AuditDep,
    request: Request,
):
    customer = await CustomerService.submit(db_session, current_user, customer_id)
    await audit.log_action("SUBMIT_APPLICATION", "CUSTOMER", customer.id, user=current_user, request=request)
    return customer


@customers_router.put("/{customer_id}", response_model=CustomerOut)
async def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    db_session: SessionDep,
    current_user: CurrentUserDep,
    audit: AuditDep,
    request: Request,
):
    try:
        customer = await CustomerService.update(db_session, current_user, customer_id, payload)
    except OnboardingError as e:
        await audit.log_action("UPDATE_CUSTOMER", "CUSTOMER", customer_id, result="FAILURE", details=e.message, user=current_user, request=request)
        raise
    changed = sorted(payload.model_dump(exclude_unset=True))
    await audit.log_action("UPDATE_CUSTOMER", "CUSTOMER", customer.id, details=f"Fields: {changed}", user=current_user, request=request)
    return customer


@customers_router.put("/{customer_id}/approve", response_model=DecisionResponse)
async def approve_customer(
    customer_id: int,
    db_session: SessionDep,
    current_user: EmployeeDep,
    app_settings: SettingsDep,
    audit: AuditDep,
    request: Request,
):
    customer, review_created, backfilled = await CustomerService.approve(
        db_session, current_user, customer_id, app_settings.REVIEW_INTERVAL_MONTHS
    )
    await audit.log_action(
        "APPROVE_APPLICATION", "CUSTOMER", customer.id,
        details=f"reviewCreated={review_created} backfilled={len(backfilled)}",
        user=current_user, request=request,
    )
    return DecisionResponse(
        message="Customer approved",
        customer=CustomerOut.model_validate(customer),
        reviewCreated=review_created,
        backfilled=len(backfilled),
    )


@customers_router.put("/{customer_id}/reject", response_model=DecisionResponse)
async def reject_customer(
    customer_id: int,
    payload: RejectRequest,
    db_session: SessionDep,
    current_user: EmployeeDep,
    audit: AuditDep,
    request: Request,
):
    customer = await CustomerService.reject(db_session, current_user, customer_id, payload.reason)
    await audit.log_action("REJECT_APPLICATION", "CUSTOMER", customer.id, details=customer.rejection_reason, user=current_user, request=request)
    return DecisionResponse(message="Customer rejected", customer=CustomerOut.model_validate(customer))


@customers_router.post("/{customer_id}/calculate-risk", response_model=RiskScoreEnvelope)
async def calculate_risk(
    customer_id: int,
    db_session: SessionDep,
    current_user: CurrentUserDep,
    audit: AuditDep,
    request: Request,
):
    risk = await CustomerService.calculate_risk(db_session, current_user, customer_id)
    await audit.log_action("CALCULATE_RISK", "CUSTOMER", customer_id, details=f"score={risk.score}", user=current_user, request=request)
    return RiskScoreEnvelope(riskScore=RiskScoreOut.model_validate(risk))


@customers_router.get("/{customer_id}/risk-score", response_model=RiskScoreEnvelope)
async def get_risk_score(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    return RiskScoreEnvelope(riskScore=await CustomerService.get_risk_score(db_session, current_user, customer_id))


@customers_router.get("/{customer_id}/history", response_model=HistoryResponse)
async def get_customer_history(customer_id: int, db_session: SessionDep, current_user: CurrentUserDep):
    entries = await CustomerService.history(db_session, current_user, customer_id)
    return HistoryResponse(history=[AuditLogOut.model_validate(entry) for entry in entries])
