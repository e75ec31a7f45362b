"""
Relational schema for the platform.

Row-level invariants (non-negative stock, one review per patient per product,
completion percentage bounds, rating ranges) live here as database
constraints rather than in the service layer.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()


def _id() -> Column:
    return Column("id", String, primary_key=True)


def _timestamps() -> list[Column]:
    return [
        Column("created_at", Float, nullable=False, index=True),
        Column("updated_at", Float, nullable=False),
    ]


product_categories = Table(
    "product_categories",
    metadata,
    _id(),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=True),
    *_timestamps(),
)

herbs = Table(
    "herbs",
    metadata,
    _id(),
    Column("name", String(200), nullable=False, index=True),
    Column("thai_name", String(200), nullable=True),
    Column("scientific_name", String(200), nullable=True),
    Column("description", Text, nullable=True),
    Column("properties", Text, nullable=True),
    Column("dosage_instructions", Text, nullable=True),
    Column("contraindications", Text, nullable=True),
    Column("cost_per_unit", Float, nullable=True),
    Column("retail_price", Float, nullable=True),
    Column("commission_rate", Float, nullable=True),
    Column("stock_quantity", Integer, nullable=False, default=0),
    Column("price_currency", String(3), nullable=False, default="THB"),
    Column("brand", String(100), nullable=True),
    Column("category_id", String, nullable=True, index=True),
    Column("image_url", String, nullable=True),
    Column("images", JSON, nullable=False, default=list),
    Column("certifications", JSON, nullable=False, default=list),
    Column("subscription_enabled", Boolean, nullable=False, default=False),
    Column("subscription_discount_percentage", Float, nullable=True),
    Column("subscription_intervals", JSON, nullable=False, default=list),
    *_timestamps(),
    CheckConstraint("stock_quantity >= 0", name="ck_herbs_stock_non_negative"),
    CheckConstraint(
        "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)",
        name="ck_herbs_commission_rate",
    ),
)

product_reviews = Table(
    "product_reviews",
    metadata,
    _id(),
    Column("herb_id", String, nullable=False, index=True),
    Column("patient_id", String, nullable=True),
    Column("rating", Integer, nullable=False),
    Column("title", String(100), nullable=True),
    Column("review_text", Text, nullable=True),
    Column("reviewer_name", String(100), nullable=True),
    Column("media", JSON, nullable=False, default=list),
    *_timestamps(),
    UniqueConstraint("herb_id", "patient_id", name="uq_review_per_patient"),
    CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),
)

patients = Table(
    "patients",
    metadata,
    _id(),
    Column("user_id", String, nullable=True, index=True),
    Column("practitioner_id", String, nullable=True, index=True),
    Column("full_name", String(255), nullable=False),
    Column("email", String(255), nullable=True),
    Column("phone", String(20), nullable=True),
    Column("date_of_birth", String, nullable=True),
    Column("medical_history", Text, nullable=True),
    Column("allergies", Text, nullable=True),
    Column("email_consent", Boolean, nullable=False, default=False),
    Column("line_user_id", String, nullable=True),
    Column("default_shipping_address", Text, nullable=True),
    Column("default_shipping_city", String, nullable=True),
    Column("default_shipping_postal_code", String, nullable=True),
    Column("default_shipping_phone", String, nullable=True),
    *_timestamps(),
)

patient_connection_links = Table(
    "patient_connection_links",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("token", String, nullable=False, unique=True),
    Column("connection_type", String, nullable=False),
    Column("expires_at", Float, nullable=False),
    Column("used_at", Float, nullable=True),
    Column("created_by", String, nullable=True),
    *_timestamps(),
    CheckConstraint(
        "connection_type IN ('account_signup', 'line_connect')",
        name="ck_connection_type",
    ),
)

recommendations = Table(
    "recommendations",
    metadata,
    _id(),
    Column("practitioner_id", String, nullable=False, index=True),
    Column("patient_id", String, nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("diagnosis", Text, nullable=True),
    Column("instructions", Text, nullable=True),
    Column("duration_days", Integer, nullable=True),
    Column("status", String, nullable=False, default="draft"),
    Column("total_cost", Float, nullable=False, default=0.0),
    *_timestamps(),
)

recommendation_items = Table(
    "recommendation_items",
    metadata,
    _id(),
    Column("recommendation_id", String, nullable=False, index=True),
    Column("herb_id", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Float, nullable=False),
    Column("dosage_instructions", Text, nullable=True),
    *_timestamps(),
    CheckConstraint("quantity > 0", name="ck_item_quantity_positive"),
)

recommendation_links = Table(
    "recommendation_links",
    metadata,
    _id(),
    Column("recommendation_id", String, nullable=False, index=True),
    Column("token", String, nullable=False, unique=True),
    Column("expires_at", Float, nullable=False),
    Column("used_at", Float, nullable=True),
    *_timestamps(),
)

orders = Table(
    "orders",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("practitioner_id", String, nullable=True, index=True),
    Column("recommendation_id", String, nullable=True),
    Column("total_amount", Float, nullable=False),
    Column("currency", String(3), nullable=False, default="THB"),
    Column("status", String, nullable=False, default="pending", index=True),
    Column("payment_status", String, nullable=False, default="pending"),
    Column("payment_method", String, nullable=True),
    Column("shipping_address", Text, nullable=True),
    Column("shipping_city", String, nullable=True),
    Column("shipping_postal_code", String, nullable=True),
    Column("shipping_phone", String, nullable=True),
    Column("items", JSON, nullable=False, default=list),
    Column("tracking_number", String, nullable=True),
    Column("courier_name", String, nullable=True),
    Column("courier_tracking_url", String, nullable=True),
    Column("estimated_delivery_date", Float, nullable=True),
    Column("notes", Text, nullable=True),
    *_timestamps(),
    CheckConstraint("total_amount >= 0", name="ck_order_total_non_negative"),
)

sales_analytics = Table(
    "sales_analytics",
    metadata,
    _id(),
    Column("order_id", String, nullable=False, unique=True),
    Column("practitioner_id", String, nullable=True, index=True),
    Column("sale_amount", Float, nullable=False),
    Column("commission_rate", Float, nullable=False),
    Column("commission_amount", Float, nullable=False),
    Column("commission_status", String, nullable=False, default="pending"),
    Column("paid_at", Float, nullable=True),
    *_timestamps(),
)

practitioner_commission_overrides = Table(
    "practitioner_commission_overrides",
    metadata,
    _id(),
    Column("practitioner_id", String, nullable=False, index=True),
    Column("commission_rate", Float, nullable=False),
    *_timestamps(),
    UniqueConstraint("practitioner_id", name="uq_commission_override"),
    CheckConstraint(
        "commission_rate >= 0 AND commission_rate <= 1",
        name="ck_override_commission_rate",
    ),
)

courses = Table(
    "courses",
    metadata,
    _id(),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("category", String(100), nullable=True),
    Column("difficulty_level", String, nullable=True),
    Column("estimated_hours", Integer, nullable=True),
    Column("prerequisites", JSON, nullable=False, default=list),
    Column("learning_outcomes", JSON, nullable=False, default=list),
    Column("thumbnail_url", String, nullable=True),
    Column("preview_video_url", String, nullable=True),
    Column("is_published", Boolean, nullable=False, default=False),
    Column("display_order", Integer, nullable=False, default=0),
    Column("target_audience", String, nullable=False, default="practitioner"),
    Column("instructor_id", String, nullable=True),
    *_timestamps(),
)

course_sections = Table(
    "course_sections",
    metadata,
    _id(),
    Column("course_id", String, nullable=False, index=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("display_order", Integer, nullable=False, default=0),
    Column("is_published", Boolean, nullable=False, default=True),
    *_timestamps(),
    CheckConstraint("display_order >= 0", name="ck_section_order"),
)

course_lessons = Table(
    "course_lessons",
    metadata,
    _id(),
    Column("course_id", String, nullable=False, index=True),
    Column("section_id", String, nullable=True, index=True),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("lesson_type", String, nullable=False, default="video"),
    Column("content_url", String, nullable=True),
    Column("video_duration_seconds", Integer, nullable=True),
    Column("transcript", Text, nullable=True),
    Column("is_published", Boolean, nullable=False, default=False),
    Column("display_order", Integer, nullable=False, default=0),
    *_timestamps(),
    CheckConstraint("display_order >= 0", name="ck_lesson_order"),
)

course_enrollments = Table(
    "course_enrollments",
    metadata,
    _id(),
    Column("course_id", String, nullable=False, index=True),
    Column("user_id", String, nullable=False, index=True),
    Column("progress_percentage", Float, nullable=False, default=0.0),
    Column("completed_at", Float, nullable=True),
    *_timestamps(),
    UniqueConstraint("course_id", "user_id", name="uq_enrollment"),
    CheckConstraint(
        "progress_percentage >= 0 AND progress_percentage <= 100",
        name="ck_enrollment_progress",
    ),
)

lesson_progress = Table(
    "lesson_progress",
    metadata,
    _id(),
    Column("enrollment_id", String, nullable=False, index=True),
    Column("lesson_id", String, nullable=False),
    Column("completed_at", Float, nullable=True),
    Column("last_position_seconds", Integer, nullable=False, default=0),
    *_timestamps(),
    UniqueConstraint("enrollment_id", "lesson_id", name="uq_lesson_progress"),
)

course_certificates = Table(
    "course_certificates",
    metadata,
    _id(),
    Column("enrollment_id", String, nullable=False, unique=True),
    Column("verification_code", String(32), nullable=False, unique=True),
    Column("recipient_name", String, nullable=True),
    Column("course_title", String, nullable=True),
    Column("storage_path", String, nullable=True),
    *_timestamps(),
)

live_meetings = Table(
    "live_meetings",
    metadata,
    _id(),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=True),
    Column("stream_url", String, nullable=False),
    Column("stream_platform", String, nullable=True),
    Column("scheduled_start_time", Float, nullable=False, index=True),
    Column("scheduled_end_time", Float, nullable=True),
    Column("is_published", Boolean, nullable=False, default=False),
    Column("max_attendees", Integer, nullable=True),
    Column("meeting_type", String, nullable=False, default="open"),
    Column("allowed_roles", JSON, nullable=False, default=list),
    Column("tags", JSON, nullable=False, default=list),
    Column("thumbnail_url", String, nullable=True),
    Column("host_id", String, nullable=True, index=True),
    *_timestamps(),
)

live_meeting_attendees = Table(
    "live_meeting_attendees",
    metadata,
    _id(),
    Column("meeting_id", String, nullable=False, index=True),
    Column("user_id", String, nullable=False),
    Column("role", String, nullable=True),
    *_timestamps(),
    UniqueConstraint("meeting_id", "user_id", name="uq_meeting_attendee"),
)

wellness_surveys = Table(
    "wellness_surveys",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("recommendation_id", String, nullable=True),
    Column("overall_feeling", Integer, nullable=False),
    Column("symptom_improvement", Integer, nullable=False),
    Column("treatment_satisfaction", Integer, nullable=False),
    Column("energy_levels", Integer, nullable=False),
    Column("sleep_quality", Integer, nullable=False),
    Column("notes", Text, nullable=True),
    *_timestamps(),
    CheckConstraint(
        "overall_feeling BETWEEN 1 AND 5 AND symptom_improvement BETWEEN 1 AND 5 "
        "AND treatment_satisfaction BETWEEN 1 AND 5 AND energy_levels BETWEEN 1 AND 5 "
        "AND sleep_quality BETWEEN 1 AND 5",
        name="ck_wellness_ratings",
    ),
)

treatment_schedules = Table(
    "treatment_schedules",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("recommendation_id", String, nullable=True, index=True),
    Column("herb_id", String, nullable=True),
    Column("medication_name", String(200), nullable=False),
    Column("dosage", String(100), nullable=False),
    Column("frequency", String, nullable=False),
    Column("times_of_day", JSON, nullable=False, default=list),
    Column("start_date", String, nullable=False),
    Column("end_date", String, nullable=True),
    Column("instructions", Text, nullable=True),
    Column("take_with_food", Boolean, nullable=False, default=False),
    Column("special_instructions", Text, nullable=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_by", String, nullable=True),
    *_timestamps(),
)

reminder_settings = Table(
    "reminder_settings",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, unique=True),
    Column("enabled", Boolean, nullable=False, default=True),
    Column("reminder_methods", JSON, nullable=False, default=list),
    Column("advance_notice_minutes", Integer, nullable=False, default=15),
    Column("quiet_hours_start", String, nullable=False, default="22:00"),
    Column("quiet_hours_end", String, nullable=False, default="07:00"),
    Column("missed_dose_alerts", Boolean, nullable=False, default=True),
    *_timestamps(),
    CheckConstraint(
        "advance_notice_minutes >= 0 AND advance_notice_minutes <= 120",
        name="ck_reminder_advance_notice",
    ),
)

patient_check_ins = Table(
    "patient_check_ins",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("treatment_schedule_id", String, nullable=False, index=True),
    Column("check_in_date", String, nullable=False, index=True),
    Column("status", String, nullable=False),
    Column("taken_at_time", String, nullable=True),
    Column("side_effects", Text, nullable=True),
    Column("effectiveness_rating", Integer, nullable=True),
    Column("notes", Text, nullable=True),
    *_timestamps(),
    UniqueConstraint("treatment_schedule_id", "check_in_date", name="uq_check_in_per_day"),
    CheckConstraint(
        "effectiveness_rating IS NULL OR (effectiveness_rating >= 1 AND effectiveness_rating <= 5)",
        name="ck_check_in_rating",
    ),
)

reminder_deliveries = Table(
    "reminder_deliveries",
    metadata,
    _id(),
    Column("treatment_schedule_id", String, nullable=False, index=True),
    Column("reminder_date", String, nullable=False),
    Column("scheduled_time", String, nullable=False),
    *_timestamps(),
    UniqueConstraint(
        "treatment_schedule_id", "reminder_date", "scheduled_time", name="uq_reminder_slot"
    ),
)

patient_messages = Table(
    "patient_messages",
    metadata,
    _id(),
    Column("patient_id", String, nullable=False, index=True),
    Column("sender_id", String, nullable=False),
    Column("recipient_type", String, nullable=False),
    Column("recipient_id", String, nullable=True, index=True),
    Column("subject", String(200), nullable=True),
    Column("message_body", Text, nullable=False),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("parent_id", String, nullable=True),
    *_timestamps(),
)

guest_support_messages = Table(
    "guest_support_messages",
    metadata,
    _id(),
    Column("user_id", String, nullable=True),
    Column("email", String(255), nullable=False),
    Column("full_name", String(100), nullable=True),
    Column("subject", String(200), nullable=False),
    Column("message_body", Text, nullable=False),
    Column("chat_history", JSON, nullable=True),
    Column("status", String, nullable=False, default="open"),
    Column("is_read", Boolean, nullable=False, default=False),
    *_timestamps(),
)

chat_sessions = Table(
    "chat_sessions",
    metadata,
    _id(),
    Column("user_id", String, nullable=True),
    Column("language", String(2), nullable=False, default="en"),
    Column("messages", JSON, nullable=False, default=list),
    *_timestamps(),
)

contact_submissions = Table(
    "contact_submissions",
    metadata,
    _id(),
    Column("name", String(200), nullable=False),
    Column("email", String(255), nullable=False, index=True),
    Column("subject", String(200), nullable=False),
    Column("message", Text, nullable=False),
    Column("ip_address", String, nullable=True, index=True),
    Column("user_agent", String, nullable=True),
    Column("status", String, nullable=False, default="new"),
    Column("is_read", Boolean, nullable=False, default=False),
    *_timestamps(),
)

notification_jobs = Table(
    "notification_jobs",
    metadata,
    _id(),
    Column("kind", String, nullable=False),
    Column("payload", JSON, nullable=False),
    Column("status", String, nullable=False, index=True),
    Column("attempts", Integer, nullable=False, default=0),
    Column("last_error", Text, nullable=True),
    Column("locked_at", Float, nullable=True),
    *_timestamps(),
)
