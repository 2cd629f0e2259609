from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from branchops.core.db.base import Base, utc_now


# ------------------------------------------------------------
# Users / access
# ------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    nationality = Column(String(100))
    phone = Column(String(50))
    role = Column(String(32))
    status = Column(String(16), nullable=False, default="pending")
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    rejection_reason = Column(Text)
    last_login = Column(DateTime)

    onboarding_completed = Column(Boolean, nullable=False, default=False)
    tours_completed = Column(JSON, nullable=False, default=list)
    onboarding_skipped = Column(Boolean, nullable=False, default=False)
    onboarding_started_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    branch_access = relationship(
        "UserBranchAccess",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserBranchAccess.user_id",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def branch_slugs(self) -> list[str]:
        return sorted(a.branch_slug for a in self.branch_access)


class UserBranchAccess(Base):
    __tablename__ = "user_branch_access"
    __table_args__ = (UniqueConstraint("user_id", "branch_slug", name="uq_user_branch"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_slug = Column(String(100), nullable=False)
    assigned_by = Column(Integer, ForeignKey("users.id"))
    assigned_at = Column(DateTime, nullable=False, default=utc_now)

    user = relationship("User", back_populates="branch_access", foreign_keys=[user_id])


# ------------------------------------------------------------
# Branches / role guides
# ------------------------------------------------------------
class Branch(Base):
    __tablename__ = "branches"

    id = Column(String(32), primary_key=True)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    school = Column(String(255))
    location = Column(String(255))
    manager = Column(String(255))
    contacts = Column(JSON, nullable=False, default=dict)
    operating_hours = Column(String(255))
    delivery_schedule = Column(JSON, nullable=False, default=list)
    kpis = Column(JSON, nullable=False, default=dict)
    roles = Column(JSON, nullable=False, default=list)
    media = Column(JSON, nullable=False, default=dict)


class RoleGuide(Base):
    __tablename__ = "role_guides"

    role_id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    responsibilities = Column(JSON, nullable=False, default=list)
    daily_flow = Column(JSON, nullable=False, default=dict)
    checklists = Column(JSON, nullable=False, default=dict)
    dos = Column(JSON, nullable=False, default=list)
    donts = Column(JSON, nullable=False, default=list)


# ------------------------------------------------------------
# Recipes / instructions / production
# ------------------------------------------------------------
class Recipe(Base):
    __tablename__ = "recipes"

    recipe_id = Column(String(128), primary_key=True)
    name = Column(String(255), nullable=False)
    station = Column(String(100))
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class RecipeInstruction(Base):
    __tablename__ = "recipe_instructions"

    instruction_id = Column(String(128), primary_key=True)
    dish_name = Column(String(255), nullable=False)
    category = Column(String(100))
    document = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class ProductionSchedule(Base):
    __tablename__ = "production_schedules"

    schedule_id = Column(String(64), primary_key=True)
    week_start = Column(Date, nullable=False, index=True)
    week_end = Column(Date, nullable=False)
    created_by = Column(String(255))
    days = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


# ------------------------------------------------------------
# Dispatch
# ------------------------------------------------------------
class Dispatch(Base):
    __tablename__ = "dispatches"

    id = Column(String(64), primary_key=True)
    created_date = Column(DateTime, nullable=False, default=utc_now)
    delivery_date = Column(Date, nullable=False, index=True)
    created_by = Column(String(255), nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime)
    deleted_by = Column(String(255))

    branch_dispatches = relationship(
        "BranchDispatch",
        back_populates="dispatch",
        cascade="all, delete-orphan",
        order_by="BranchDispatch.position",
    )


class BranchDispatch(Base):
    __tablename__ = "branch_dispatches"
    __table_args__ = (UniqueConstraint("dispatch_id", "branch_slug", name="uq_dispatch_branch"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    dispatch_id = Column(String(64), ForeignKey("dispatches.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    branch_slug = Column(String(100), nullable=False, index=True)
    branch_name = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    packed_by = Column(String(255))
    packing_started_at = Column(DateTime)
    packing_completed_at = Column(DateTime)
    received_by = Column(String(255))
    receiving_started_at = Column(DateTime)
    received_at = Column(DateTime)
    completed_at = Column(DateTime)
    overall_notes = Column(Text, nullable=False, default="")

    dispatch = relationship("Dispatch", back_populates="branch_dispatches")
    items = relationship(
        "DispatchItem",
        back_populates="branch_dispatch",
        cascade="all, delete-orphan",
        order_by="DispatchItem.position",
    )


class DispatchItem(Base):
    __tablename__ = "dispatch_items"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(String(128), nullable=False)
    branch_dispatch_id = Column(Integer, ForeignKey("branch_dispatches.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String(255), nullable=False)
    ordered_qty = Column(Float, nullable=False)
    packed_qty = Column(Float)
    received_qty = Column(Float)
    unit = Column(String(32), nullable=False, default="KG")
    packed_checked = Column(Boolean, nullable=False, default=False)
    received_checked = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=False, default="")
    issue = Column(String(16))
    added_late = Column(Boolean, nullable=False, default=False)
    added_at = Column(DateTime)
    added_by = Column(String(255))
    added_reason = Column(Text)

    branch_dispatch = relationship("BranchDispatch", back_populates="items")


# ------------------------------------------------------------
# Quality control
# ------------------------------------------------------------
class QualityCheck(Base):
    __tablename__ = "quality_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    branch_slug = Column(String(100), nullable=False, index=True)
    submitted_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    submission_date = Column(DateTime, nullable=False, default=utc_now, index=True)
    meal_service = Column(String(16), nullable=False)
    product_name = Column(String(255), nullable=False)
    section = Column(String(32), nullable=False)
    taste_score = Column(Integer, nullable=False)
    appearance_score = Column(Integer, nullable=False)
    portion_qty_gm = Column(Float, nullable=False)
    temp_celsius = Column(Float, nullable=False)
    taste_notes = Column(Text)
    portion_notes = Column(Text)
    appearance_notes = Column(Text)
    remarks = Column(Text)
    corrective_action_taken = Column(Boolean, nullable=False, default=False)
    corrective_action_notes = Column(Text)
    photos = Column(JSON, nullable=False, default=list)
    custom_fields = Column(JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="submitted")
    admin_notes = Column(Text)
    reviewed_by = Column(Integer, ForeignKey("users.id"))
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    submitter = relationship("User", foreign_keys=[submitted_by])
    feedback = relationship(
        "QualityFeedback",
        back_populates="quality_check",
        cascade="all, delete-orphan",
        order_by="QualityFeedback.created_at.desc()",
    )


class QualityFeedback(Base):
    __tablename__ = "quality_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quality_check_id = Column(Integer, ForeignKey("quality_checks.id", ondelete="CASCADE"), nullable=False, index=True)
    feedback_text = Column(Text, nullable=False)
    feedback_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    quality_check = relationship("QualityCheck", back_populates="feedback")
    author = relationship("User", foreign_keys=[feedback_by])


class QualityAnalysis(Base):
    __tablename__ = "quality_analytics_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    analysis_date = Column(Date, nullable=False)
    period_type = Column(String(20), nullable=False)
    period_start = Column(Date, nullable=False, index=True)
    period_end = Column(Date, nullable=False, index=True)
    branch_slug = Column(String(100))
    summary = Column(Text, nullable=False)
    insights = Column(JSON, nullable=False, default=list)
    common_issues = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    top_performers = Column(JSON, nullable=False, default=list)
    low_performers = Column(JSON, nullable=False, default=list)
    trends = Column(JSON, nullable=False, default=dict)
    total_submissions = Column(Integer, nullable=False, default=0)
    branches_analyzed = Column(JSON, nullable=False, default=list)
    generated_by = Column(String(50), nullable=False, default="openai")
    generation_time_ms = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=utc_now)


# ------------------------------------------------------------
# Notifications
# ------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(32), nullable=False)
    priority = Column(String(16), nullable=False, default="normal")
    title = Column(String(255), nullable=False)
    preview = Column(String(500), nullable=False)
    content = Column(Text, nullable=False)
    created_by = Column(String(255), nullable=False, default="System")
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime)
    target_roles = Column(JSON)
    related_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    meta = Column("metadata", JSON)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)

    reads = relationship("NotificationRead", back_populates="notification", cascade="all, delete-orphan")


class NotificationRead(Base):
    __tablename__ = "notification_reads"
    __table_args__ = (UniqueConstraint("notification_id", "user_identifier", name="uq_notification_reader"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False)
    user_identifier = Column(String(255), nullable=False)
    read_at = Column(DateTime, nullable=False, default=utc_now)

    notification = relationship("Notification", back_populates="reads")
