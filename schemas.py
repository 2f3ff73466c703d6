# schemas.py
# Pydantic models for request/response validation and serialization.
# Response models are built from ORM rows by the services, so the storage schema
# never leaks to the wire directly.

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# -----------------------
#  AUTH
# -----------------------
class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    dateOfBirth: Optional[date] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postalCode: Optional[str] = None
    country: Optional[str] = None
    idNumber: Optional[str] = None
    annualIncome: Optional[float] = None
    employmentStatus: Optional[str] = None
    accountType: Optional[str] = None
    initialDeposit: Optional[float] = None


class RegisterResponse(BaseModel):
    userId: int
    message: str
    referenceNumber: str


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str


class LoginResponse(BaseModel):
    token: str
    user: UserOut


class ExistsResponse(BaseModel):
    exists: bool


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    user: UserOut
    customerId: Optional[int] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    newPassword: Optional[str] = None


class PasswordResetLinkResponse(BaseModel):
    url: str
    expiresIn: int


# -----------------------
#  RISK
# -----------------------
class RiskScoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customer_id: int
    score: int
    risk_level: str
    age_factor: int
    income_factor: int
    employment_factor: int
    account_type_factor: int
    deposit_factor: int
    calculated_at: Optional[datetime] = None


class RiskBreakdown(BaseModel):
    age_factor: int
    income_factor: int
    employment_factor: int
    account_type_factor: int
    deposit_factor: int


class RiskScoreEnvelope(BaseModel):
    riskScore: RiskScoreOut


# -----------------------
#  CUSTOMERS
# -----------------------
class CustomerFields(BaseModel):
    """Profile fields a customer or employee may write."""
    model_config = ConfigDict(extra="ignore")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    id_number: Optional[str] = None
    annual_income: Optional[float] = None
    employment_status: Optional[str] = None
    account_type: Optional[str] = None
    initial_deposit: Optional[float] = None


class CustomerCreate(CustomerFields):
    pass


class CustomerUpdate(CustomerFields):
    password: Optional[str] = None
    currentPassword: Optional[str] = None


class CustomerOut(BaseModel):
    """Raw application record as seen by its owner."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    id_number: Optional[str] = None
    annual_income: Optional[float] = None
    employment_status: Optional[str] = None
    account_type: Optional[str] = None
    initial_deposit: Optional[float] = None
    status: str
    rejection_reason: Optional[str] = None
    approved_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    decision_date: Optional[datetime] = None


class CustomerSummary(BaseModel):
    id: int
    customerName: str
    email: str
    status: str
    registrationDate: datetime
    updated_at: Optional[datetime] = None
    risk_score: Optional[int] = None
    risk_level: Optional[str] = None
    risk_breakdown: Optional[RiskBreakdown] = None


class CustomerDetail(CustomerSummary):
    date_of_birth: Optional[date] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    annual_income: Optional[float] = None
    employment_status: Optional[str] = None
    account_type: Optional[str] = None
    initial_deposit: Optional[float] = None
    id_number: Optional[str] = None
    rejection_reason: Optional[str] = None
    decision_date: Optional[datetime] = None


class CustomerListResponse(BaseModel):
    customers: List[CustomerSummary]
    total: int
    page: int
    totalPages: int


class CustomerSearchRow(BaseModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    score: Optional[int] = None


class CustomerSearchResponse(BaseModel):
    customers: List[CustomerSearchRow]
    count: int


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class DecisionResponse(BaseModel):
    message: str
    customer: CustomerOut
    # approval only
    reviewCreated: Optional[bool] = None
    backfilled: Optional[int] = None


# -----------------------
#  REVIEWS
# -----------------------
class ReviewCustomer(BaseModel):
    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    scheduled_date: date
    completed_date: Optional[date] = None
    status: str
    next_review_date: Optional[date] = None
    notes: Optional[str] = None
    completed_by: Optional[int] = None
    customer: Optional[ReviewCustomer] = None


class ReviewListResponse(BaseModel):
    reviews: List[ReviewOut]


class PastReview(BaseModel):
    id: int
    completed_date: Optional[date] = None
    notes: Optional[str] = None
    scheduled_date: date


class PastReviewResponse(BaseModel):
    pastReviews: List[PastReview]


class ReviewCompleteRequest(BaseModel):
    completedDate: Optional[str] = None
    notes: Optional[str] = None
    nextReviewDate: Optional[str] = None


class ReviewCompleteResponse(BaseModel):
    review: ReviewOut


class ScheduledReview(BaseModel):
    customer_id: int
    scheduled_date: date


class ApproveAndScheduleResponse(BaseModel):
    message: str
    reviewCreated: bool
    backfilled: int


class BackfillResponse(BaseModel):
    message: str
    createdReviews: List[ScheduledReview]


class SchedulerRunResponse(BaseModel):
    created: List[ScheduledReview]


# -----------------------
#  DASHBOARD
# -----------------------
class RiskBucket(BaseModel):
    count: int = 0
    percent: float = 0


class RiskDistribution(BaseModel):
    low: RiskBucket = Field(default_factory=RiskBucket)
    medium: RiskBucket = Field(default_factory=RiskBucket)
    high: RiskBucket = Field(default_factory=RiskBucket)
    unknown: RiskBucket = Field(default_factory=RiskBucket)


class RiskDetail(BaseModel):
    customer_id: int
    risk_score: Optional[int] = None
    risk_level: str
    calculated_at: Optional[datetime] = None


class TrendPoint(BaseModel):
    period: str
    count: int


class DashboardStatistics(BaseModel):
    totalApplications: int
    pending: int
    approved: int
    rejected: int
    approvalRate: float
    riskDistribution: RiskDistribution
    riskDetails: List[RiskDetail]
    trendsData: List[TrendPoint]
    overdueReviews: int
    # "from" is a keyword, hence the alias
    from_: datetime = Field(alias="from")
    to: datetime

    model_config = ConfigDict(populate_by_name=True)


# -----------------------
#  AUDIT
# -----------------------
class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    user_role: Optional[str] = None
    action_type: str
    entity_type: str
    entity_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    result: str
    details: Optional[str] = None
    created_at: datetime


class AuditLogPage(BaseModel):
    logs: List[AuditLogOut]
    total: int
    page: int


class HistoryResponse(BaseModel):
    history: List[AuditLogOut]


# -----------------------
#  DOCUMENTS
# -----------------------
class DocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    file_name: str
    file_path: str
    file_size: int
    mime_type: str
    uploaded_by: Optional[int] = None
    uploaded_at: datetime


class DocumentListResponse(BaseModel):
    documents: List[DocumentOut]


class SignedUrlResponse(BaseModel):
    url: str
    expiresIn: int


class HealthResponse(BaseModel):
    status: str
    time: datetime


def error_body(message: str, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message}
    body.update(extra)
    return body
