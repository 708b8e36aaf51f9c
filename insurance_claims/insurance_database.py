from sqlalchemy import (create_engine, Column, Integer, String, Text, Boolean, ForeignKey, JSON, Numeric,
                        Index, UniqueConstraint, text)
from sqlalchemy.types import Date, DateTime
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from insurance_claims.config import get_database_url, get_sql_echo

Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC, matches what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


class MedicalCode(Base):
    __tablename__ = "medical_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country_id = Column(String(50), nullable=False)
    code_type = Column(String(20), nullable=False)
    code = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(100))
    standard_amount = Column(Numeric(10, 2))
    source = Column(String(50))  # manual, bulk_import
    uploaded_by = Column(String(100))
    is_active = Column(Boolean, nullable=False, default=True)
    effective_from = Column(DateTime, default=utcnow)
    superseded_at = Column(DateTime)
    superseded_by_id = Column(Integer, ForeignKey("medical_codes.id"))

    __table_args__ = (
        # one active entry per (country, type, code); superseded rows stay for history
        Index(
            "uq_medical_codes_active",
            "country_id", "code_type", "code",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_medical_codes_lookup", "country_id", "code_type", "code"),
    )


class MedicalCodeUpload(Base):
    __tablename__ = "medical_code_uploads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    country_id = Column(String(50), nullable=False, index=True)
    source = Column(String(255))
    replace_mode = Column(Boolean, default=False)
    records_processed = Column(Integer, default=0)
    records_imported = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)
    errors = Column(JSON, default=list)
    status = Column(String(20), default="processing")
    uploaded_by = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime)


class CoverageRuleRecord(Base):
    __tablename__ = "coverage_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_id = Column(String(100), nullable=False)
    insurer_id = Column(String(100), nullable=False)
    copay_amount = Column(Numeric(10, 2))
    copay_percentage = Column(Numeric(5, 2))
    max_coverage_amount = Column(Numeric(10, 2))
    pre_auth_required = Column(Boolean, nullable=False, default=False)
    deductible_applies = Column(Boolean, nullable=False, default=False)
    effective_date = Column(Date)
    expiration_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(100))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("service_id", "insurer_id", name="uq_coverage_rules_service_insurer"),
    )


class ClaimRecord(Base):
    __tablename__ = "claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_number = Column(String(40), unique=True, nullable=False)
    patient_id = Column(String(50), nullable=False, index=True)
    service_ref = Column(String(100), nullable=False)
    insurer_id = Column(String(100), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    gross_amount = Column(Numeric(12, 2), nullable=False)
    insurer_amount = Column(Numeric(12, 2), nullable=False)
    patient_amount = Column(Numeric(12, 2), nullable=False)
    approved_amount = Column(Numeric(12, 2))
    paid_amount = Column(Numeric(12, 2))
    pre_auth_required = Column(Boolean, nullable=False, default=False)
    deductible_applies = Column(Boolean, nullable=False, default=False)
    max_coverage_capped = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="submitted", index=True)
    submitted_by = Column(String(100), nullable=False)
    submitted_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime)
    paid_at = Column(DateTime)
    denial_reason = Column(Text)
    supersedes_claim_id = Column(Integer, ForeignKey("claims.id"))

    transitions = relationship(
        "ClaimTransitionRow",
        back_populates="claim",
        order_by="ClaimTransitionRow.id",
    )


class ClaimTransitionRow(Base):
    __tablename__ = "claim_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    claim_id = Column(Integer, ForeignKey("claims.id"), nullable=False, index=True)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    actor = Column(String(100), nullable=False)
    reason = Column(Text)
    occurred_at = Column(DateTime, nullable=False, default=utcnow)

    claim = relationship("ClaimRecord", back_populates="transitions")


#engine and sessions
def make_engine(url: str = None):
    url = url or get_database_url()
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=get_sql_echo(), connect_args=connect_args)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    #to create tables
    Base.metadata.create_all(bind or engine)
