# crud.py
# Row-level database operations (lookup, insert, update, upsert, delete) for all models.
# Higher-level workflow lives in the *_service modules.

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, exists, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

import models
from date_utils import utcnow
from exceptions import StoreError


def _dialect_insert(db: AsyncSession, table):
    """INSERT construct supporting ON CONFLICT for the session's backend."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise StoreError(f"ON CONFLICT inserts are not supported on {dialect}")


# -----------------------
#  USERS
# -----------------------
async def get_user(db: AsyncSession, user_id: int):
    result = await db.execute(select(models.User).filter(models.User.id == user_id))
    return result.scalar_one_or_none()

async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(models.User).filter(func.lower(models.User.email) == email.lower()))
    return result.scalars().first()

async def create_user(db: AsyncSession, email: str, password_hash: str, role: str):
    db_user = models.User(
        email=email,
        password_hash=password_hash,
        role=role,
        is_active=True,
        created_at=utcnow(),
    )
    db.add(db_user)
    await db.commit()
    await db.refresh(db_user)
    return db_user

async def delete_user(db: AsyncSession, user_id: int) -> None:
    await db.execute(delete(models.User).where(models.User.id == user_id))
    await db.commit()

async def update_user_password(db: AsyncSession, user: models.User, password_hash: str) -> None:
    user.password_hash = password_hash
    db.add(user)
    await db.commit()


# -----------------------
#  TOKEN BLACKLIST
# -----------------------
async def is_token_blacklisted(db: AsyncSession, token: str) -> bool:
    result = await db.execute(
        select(models.TokenBlacklist.id).where(models.TokenBlacklist.token == token).limit(1)
    )
    return result.first() is not None

async def blacklist_token(db: AsyncSession, token: str, user_id: int, expires_at: datetime) -> None:
    stmt = _dialect_insert(db, models.TokenBlacklist).values(
        token=token, user_id=user_id, expires_at=expires_at, created_at=utcnow()
    ).on_conflict_do_nothing()
    await db.execute(stmt)
    await db.commit()


# -----------------------
#  CUSTOMERS
# -----------------------
async def get_customer(db: AsyncSession, customer_id: int):
    result = await db.execute(select(models.Customer).filter(models.Customer.id == customer_id))
    return result.scalar_one_or_none()

async def get_customer_with_email(db: AsyncSession, customer_id: int) -> Optional[Tuple[models.Customer, Optional[str]]]:
    result = await db.execute(
        select(models.Customer, models.User.email)
        .outerjoin(models.User, models.User.id == models.Customer.user_id)
        .where(models.Customer.id == customer_id)
    )
    row = result.first()
    return (row[0], row[1]) if row else None

async def get_customer_by_user_id(db: AsyncSession, user_id: int):
    result = await db.execute(
        select(models.Customer).filter(models.Customer.user_id == user_id).order_by(models.Customer.id)
    )
    return result.scalars().first()

async def create_customer(db: AsyncSession, user_id: int, **fields):
    now = utcnow()
    db_customer = models.Customer(user_id=user_id, status="DRAFT", created_at=now, updated_at=now, **fields)
    db.add(db_customer)
    await db.commit()
    await db.refresh(db_customer)
    return db_customer

async def update_customer(db: AsyncSession, customer: models.Customer, **values):
    for key, value in values.items():
        setattr(customer, key, value)
    customer.updated_at = utcnow()
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    return customer

async def id_number_exists(db: AsyncSession, id_number: str) -> bool:
    result = await db.execute(select(exists().where(models.Customer.id_number == id_number)))
    return bool(result.scalar())

async def get_approved_customers(db: AsyncSession) -> Sequence[Tuple[int, Optional[datetime]]]:
    result = await db.execute(
        select(models.Customer.id, models.Customer.decision_date)
        .where(models.Customer.status == "APPROVED")
        .order_by(models.Customer.id)
    )
    return result.all()


# -----------------------
#  RISK SCORES
# -----------------------
async def get_risk_score(db: AsyncSession, customer_id: int):
    result = await db.execute(select(models.RiskScore).filter(models.RiskScore.customer_id == customer_id))
    return result.scalar_one_or_none()

async def upsert_risk_score(db: AsyncSession, customer_id: int, assessment: dict):
    """Insert or overwrite the single risk score row of a customer."""
    values = dict(assessment, customer_id=customer_id, calculated_at=utcnow())
    stmt = _dialect_insert(db, models.RiskScore).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[models.RiskScore.customer_id],
        set_={key: stmt.excluded[key] for key in values if key != "customer_id"},
    )
    await db.execute(stmt)
    await db.commit()
    result = await db.execute(
        select(models.RiskScore)
        .filter(models.RiskScore.customer_id == customer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# -----------------------
#  REVIEWS
# -----------------------
async def get_review(db: AsyncSession, review_id: int):
    result = await db.execute(select(models.Review).filter(models.Review.id == review_id))
    return result.scalar_one_or_none()

async def customer_has_reviews(db: AsyncSession, customer_id: int) -> bool:
    result = await db.execute(
        select(models.Review.id).where(models.Review.customer_id == customer_id).limit(1)
    )
    return result.first() is not None

async def customer_has_open_review(db: AsyncSession, customer_id: int) -> bool:
    result = await db.execute(
        select(models.Review.id)
        .where(models.Review.customer_id == customer_id, models.Review.status == "DRAFT")
        .limit(1)
    )
    return result.first() is not None

async def insert_review_if_absent(db: AsyncSession, customer_id: int, scheduled_date: date) -> Optional[int]:
    """
    Insert an open (DRAFT) review unless the customer already has one.
    Relies on the partial unique index on open reviews, so two concurrent
    callers can never both insert. Returns the new id, or None when skipped.
    """
    stmt = (
        _dialect_insert(db, models.Review)
        .values(customer_id=customer_id, scheduled_date=scheduled_date, status="DRAFT", created_at=utcnow())
        .on_conflict_do_nothing()
        .returning(models.Review.id)
    )
    result = await db.execute(stmt)
    row = result.first()
    await db.commit()
    return row[0] if row else None


# -----------------------
#  AUDIT LOGS
# -----------------------
async def create_audit_log(db: AsyncSession, **fields):
    entry = models.AuditLog(created_at=utcnow(), **fields)
    db.add(entry)
    await db.commit()
    return entry

async def get_audit_logs(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> Tuple[List[models.AuditLog], int]:
    query = select(models.AuditLog)
    if user_id is not None:
        query = query.where(models.AuditLog.user_id == user_id)
    if date_from is not None:
        query = query.where(models.AuditLog.created_at >= date_from)
    if date_to is not None:
        query = query.where(models.AuditLog.created_at <= date_to)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc()).offset(skip).limit(limit)
    )
    return list(result.scalars().all()), total

async def get_entity_audit_trail(db: AsyncSession, entity_type: str, entity_id: int) -> List[models.AuditLog]:
    result = await db.execute(
        select(models.AuditLog)
        .where(models.AuditLog.entity_type == entity_type, models.AuditLog.entity_id == entity_id)
        .order_by(models.AuditLog.created_at.asc(), models.AuditLog.id.asc())
    )
    return list(result.scalars().all())


# -----------------------
#  DOCUMENTS
# -----------------------
async def create_document(db: AsyncSession, **fields):
    document = models.Document(uploaded_at=utcnow(), **fields)
    db.add(document)
    await db.commit()
    await db.refresh(document)
    return document

async def get_document(db: AsyncSession, document_id: int):
    result = await db.execute(select(models.Document).filter(models.Document.id == document_id))
    return result.scalar_one_or_none()

async def get_customer_documents(db: AsyncSession, customer_id: int) -> List[models.Document]:
    result = await db.execute(
        select(models.Document)
        .where(models.Document.customer_id == customer_id)
        .order_by(models.Document.uploaded_at.desc(), models.Document.id.desc())
    )
    return list(result.scalars().all())
