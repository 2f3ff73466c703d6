# models.py
# SQLAlchemy models defining database tables (users, customers, risk scores, reviews, audit, documents).
# Timestamps are stored as naive UTC (see date_utils.utcnow).

from sqlalchemy import Boolean, Column, Integer, String, DateTime, Date, ForeignKey, Float, Text, Index, text
from sqlalchemy.orm import relationship

from database import Base
from date_utils import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    # CUSTOMER or EMPLOYEE
    role = Column(String, default="CUSTOMER", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Customer", uselist=False, back_populates="user", foreign_keys="Customer.user_id")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    phone = Column(String, nullable=True)
    address_line1 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    id_number = Column(String, nullable=True, index=True)
    annual_income = Column(Float, nullable=True)
    employment_status = Column(String, nullable=True)  # UNEMPLOYED, PART_TIME, SELF_EMPLOYED, FULL_TIME
    account_type = Column(String, nullable=True)  # INVESTMENT, BUSINESS, SAVINGS, CHECKING
    initial_deposit = Column(Float, nullable=True)

    # STATES: DRAFT -> PENDING -> APPROVED | REJECTED
    status = Column(String, default="DRAFT", nullable=False, index=True)
    rejection_reason = Column(String, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    decision_date = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="customer", foreign_keys=[user_id])
    risk_score = relationship("RiskScore", uselist=False, back_populates="customer")
    reviews = relationship("Review", back_populates="customer")
    documents = relationship("Document", back_populates="customer")


class RiskScore(Base):
    """
    Current risk score of a customer. One row per customer; recalculation overwrites it.
    risk_level is written for reference but readers derive the level from score.
    """
    __tablename__ = "risk_scores"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), unique=True, nullable=False)
    score = Column(Integer, nullable=False)
    risk_level = Column(String, nullable=False)
    age_factor = Column(Integer, nullable=False, default=0)
    income_factor = Column(Integer, nullable=False, default=0)
    employment_factor = Column(Integer, nullable=False, default=0)
    account_type_factor = Column(Integer, nullable=False, default=0)
    deposit_factor = Column(Integer, nullable=False, default=0)
    calculated_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Customer", back_populates="risk_score")


class Review(Base):
    """
    Periodic compliance review of an approved customer.
    STATES: DRAFT (open) -> COMPLETED. At most one DRAFT row per customer.
    """
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    scheduled_date = Column(Date, nullable=False, index=True)
    completed_date = Column(Date, nullable=True)
    status = Column(String, default="DRAFT", nullable=False)
    notes = Column(Text, nullable=True)
    next_review_date = Column(Date, nullable=True)
    completed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Customer", back_populates="reviews")

    __table_args__ = (
        # Serialises concurrent backfills: a second open review for the same customer is skipped
        Index(
            "uq_reviews_open_customer",
            "customer_id",
            unique=True,
            postgresql_where=text("status = 'DRAFT'"),
            sqlite_where=text("status = 'DRAFT'"),
        ),
    )


class AuditLog(Base):
    """
    Append-only audit trail. Rows are never updated or deleted by the application.
    details is truncated to 2000 characters and must not carry PII.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    user_role = Column(String, nullable=True)
    action_type = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    result = Column(String, default="SUCCESS", nullable=False)  # SUCCESS or FAILURE
    details = Column(String(2000), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<AuditLog {self.action_type} {self.entity_type}:{self.entity_id} by {self.user_id} at {self.created_at}>"


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False, unique=True)  # storage key, relative to DOCUMENT_STORAGE_DIR
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)

    customer = relationship("Customer", back_populates="documents")


# ===== TOKEN BLACKLIST MODEL =====

class TokenBlacklist(Base):
    """
    Stores invalidated JWT tokens to prevent replay attacks after logout.
    Token validation checks the blacklist before allowing access.
    """
    __tablename__ = "token_blacklist"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)  # Token expiration time from JWT
