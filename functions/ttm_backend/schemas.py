"""
Pydantic request and response schemas for the HTTP API.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import BaseModel, Field, StrictInt, field_validator

PHONE_PATTERN = r"^[0-9+\-\s()]{6,20}$"

Role = Literal["admin", "practitioner", "patient"]
Language = Literal["en", "th", "zh"]


# Catalog


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)


class HerbImage(BaseModel):
    url: str
    path: Optional[str] = None
    is_primary: bool = False
    display_order: int = Field(0, ge=0)


def _one_primary(images: Optional[list[HerbImage]]) -> Optional[list[HerbImage]]:
    if images and sum(1 for image in images if image.is_primary) > 1:
        raise ValueError("Only one image can be primary")
    return images


class HerbBase(BaseModel):
    thai_name: Optional[str] = Field(None, max_length=200)
    scientific_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    properties: Optional[str] = Field(None, max_length=2000)
    dosage_instructions: Optional[str] = Field(None, max_length=2000)
    contraindications: Optional[str] = Field(None, max_length=2000)
    cost_per_unit: Optional[float] = Field(None, ge=0)
    retail_price: Optional[float] = Field(None, ge=0)
    commission_rate: Optional[float] = Field(None, ge=0, le=1)
    brand: Optional[str] = Field(None, max_length=100)
    category_id: Optional[str] = None
    subscription_enabled: Optional[bool] = None
    subscription_discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    subscription_intervals: Optional[list[str]] = None


class HerbCreate(HerbBase):
    name: str = Field(..., min_length=1, max_length=200)
    stock_quantity: int = Field(0, ge=0)
    price_currency: str = Field("THB", pattern=r"^[A-Z]{3}$")
    images: list[HerbImage] = Field(default_factory=list, max_length=10)
    subscription_enabled: bool = False
    subscription_intervals: list[str] = Field(default_factory=list)

    @field_validator("images")
    @classmethod
    def check_primary(cls, images):
        return _one_primary(images)


class HerbUpdate(HerbBase):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    stock_quantity: Optional[int] = Field(None, ge=0)
    price_currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    images: Optional[list[HerbImage]] = Field(None, max_length=10)

    @field_validator("images")
    @classmethod
    def check_primary(cls, images):
        return _one_primary(images)


class StockAdjustment(BaseModel):
    delta: int


class ReviewMedia(BaseModel):
    url: str
    path: Optional[str] = None
    type: Literal["image", "video"]


class ReviewCreate(BaseModel):
    rating: StrictInt = Field(..., ge=1, le=5)
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    review_text: Optional[str] = Field(None, min_length=10, max_length=1000)
    reviewer_name: Optional[str] = Field(None, max_length=100)
    media: list[ReviewMedia] = Field(default_factory=list, max_length=5)


class MediaUploadRequest(BaseModel):
    prefix: Literal["herbs", "reviews"]
    owner_id: str
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str


# Patients


class PatientBase(BaseModel):
    email: Optional[str] = Field(None, max_length=255, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[str] = None
    medical_history: Optional[str] = Field(None, max_length=5000)
    allergies: Optional[str] = Field(None, max_length=2000)
    line_user_id: Optional[str] = Field(None, max_length=100)
    user_id: Optional[str] = None
    default_shipping_address: Optional[str] = Field(None, max_length=500)
    default_shipping_city: Optional[str] = Field(None, max_length=100)
    default_shipping_postal_code: Optional[str] = Field(None, max_length=10)
    default_shipping_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)


class PatientCreate(PatientBase):
    full_name: str = Field(..., min_length=1, max_length=255)
    email_consent: bool = False


class PatientUpdate(PatientBase):
    full_name: Optional[str] = Field(None, min_length=1, max_length=255)
    email_consent: Optional[bool] = None


class LineConnectRequest(BaseModel):
    line_user_id: str = Field(..., min_length=1, max_length=100)


class ConnectionLinkRequest(BaseModel):
    connection_type: Literal["account_signup", "line_connect"]


# Recommendations


class RecommendationItemIn(BaseModel):
    herb_id: str
    quantity: int = Field(..., ge=1, le=9999)
    unit_price: float = Field(..., gt=0)
    dosage_instructions: Optional[str] = Field(None, max_length=500)


class RecommendationCreate(BaseModel):
    patient_id: str
    title: str = Field(..., min_length=1, max_length=200)
    diagnosis: Optional[str] = Field(None, max_length=2000)
    instructions: Optional[str] = Field(None, max_length=5000)
    duration_days: Optional[int] = Field(None, ge=1, le=365)
    items: list[RecommendationItemIn] = Field(..., min_length=1)


class RecommendationStatusUpdate(BaseModel):
    status: Literal["draft", "sent", "completed", "cancelled"]


class SendRecommendationRequest(BaseModel):
    checkout_url: str
    channels: list[Literal["email", "line"]] = Field(default_factory=lambda: ["email"], min_length=1)
    optional_message: Optional[str] = Field(None, max_length=1000)
    practitioner_name: Optional[str] = Field(None, max_length=200)


# Orders


class CheckoutRequest(BaseModel):
    token: str = Field(..., min_length=1)
    shipping_address: str = Field(..., min_length=1, max_length=500)
    shipping_city: str = Field(..., min_length=1, max_length=100)
    shipping_postal_code: str = Field(..., pattern=r"^\d{5}$")
    shipping_phone: str = Field(..., pattern=PHONE_PATTERN)
    payment_method: Optional[Literal["promptpay", "bank_transfer", "cash_on_delivery"]] = None
    notes: Optional[str] = Field(None, max_length=1000)


class PromptPayRequest(BaseModel):
    token: str = Field(..., min_length=1)


class PromptPayResponse(BaseModel):
    recommendation_id: str
    payload: str
    qr_code_png_base64: str
    amount: float
    currency: str
    expires_at: float


class OrderStatusUpdate(BaseModel):
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled"]
    courier_name: Optional[str] = None
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class PaymentStatusUpdate(BaseModel):
    payment_status: Literal["pending", "paid", "failed", "refunded"]


class CommissionOverrideRequest(BaseModel):
    commission_rate: float = Field(..., ge=0, le=1)


class OrderStatsResponse(BaseModel):
    total_orders: int
    pending_orders: int
    total_revenue: float
    average_order_value: float
    commission_earned: float


# Courses


class CourseBase(BaseModel):
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = Field(None, max_length=100)
    difficulty_level: Optional[Literal["beginner", "intermediate", "advanced"]] = None
    estimated_hours: Optional[int] = Field(None, ge=0, le=1000)
    prerequisites: Optional[list[str]] = None
    learning_outcomes: Optional[list[str]] = None
    thumbnail_url: Optional[str] = None
    preview_video_url: Optional[str] = None


class CourseCreate(CourseBase):
    title: str = Field(..., min_length=1, max_length=200)
    is_published: bool = False
    display_order: int = Field(0, ge=0)
    target_audience: Literal["practitioner", "patient", "both"] = "practitioner"
    prerequisites: list[str] = Field(default_factory=list)
    learning_outcomes: list[str] = Field(default_factory=list)


class CourseUpdate(CourseBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    is_published: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)
    target_audience: Optional[Literal["practitioner", "patient", "both"]] = None


class SectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    is_published: bool = True


class SectionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    is_published: Optional[bool] = None


class LessonBase(BaseModel):
    description: Optional[str] = Field(None, max_length=2000)
    content_url: Optional[str] = None
    video_duration_seconds: Optional[int] = Field(None, ge=0)
    transcript: Optional[str] = Field(None, max_length=10000)


class LessonCreate(LessonBase):
    title: str = Field(..., min_length=1, max_length=200)
    lesson_type: Literal["video", "reading", "quiz"] = "video"
    is_published: bool = False


class LessonUpdate(LessonBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    lesson_type: Optional[Literal["video", "reading", "quiz"]] = None
    is_published: Optional[bool] = None


class MoveSectionRequest(BaseModel):
    new_index: int = Field(..., ge=0)


class MoveLessonRequest(BaseModel):
    target_section_id: str
    new_index: Optional[int] = Field(None, ge=0)


class LessonPositionRequest(BaseModel):
    position_seconds: int = Field(..., ge=0)


class CertificateRequest(BaseModel):
    recipient_name: Optional[str] = Field(None, max_length=200)


# Live meetings


class MeetingBase(BaseModel):
    description: Optional[str] = Field(None, max_length=2000)
    stream_platform: Optional[Literal["google_meet", "zoom", "youtube", "custom"]] = None
    scheduled_end_time: Optional[float] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    tags: Optional[list[str]] = None
    thumbnail_url: Optional[str] = None


class MeetingCreate(MeetingBase):
    title: str = Field(..., min_length=1, max_length=200)
    stream_url: str = Field(..., min_length=1)
    scheduled_start_time: float
    is_published: bool = False
    meeting_type: Literal["open", "restricted"] = "open"
    allowed_roles: list[Role] = Field(
        default_factory=lambda: ["admin", "practitioner", "patient"]
    )
    tags: list[str] = Field(default_factory=list)


class MeetingUpdate(MeetingBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    stream_url: Optional[str] = Field(None, min_length=1)
    scheduled_start_time: Optional[float] = None
    is_published: Optional[bool] = None
    meeting_type: Optional[Literal["open", "restricted"]] = None
    allowed_roles: Optional[list[Role]] = None


# Wellness


class SurveyCreate(BaseModel):
    patient_id: str
    recommendation_id: Optional[str] = None
    overall_feeling: StrictInt = Field(..., ge=1, le=5)
    symptom_improvement: StrictInt = Field(..., ge=1, le=5)
    treatment_satisfaction: StrictInt = Field(..., ge=1, le=5)
    energy_levels: StrictInt = Field(..., ge=1, le=5)
    sleep_quality: StrictInt = Field(..., ge=1, le=5)
    notes: Optional[str] = Field(None, max_length=2000)


# Medication adherence

TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TimeOfDay = Annotated[str, Field(pattern=TIME_OF_DAY_PATTERN)]


class TreatmentScheduleBase(BaseModel):
    instructions: Optional[str] = Field(None, max_length=1000)
    special_instructions: Optional[str] = Field(None, max_length=500)
    end_date: Optional[str] = Field(None, pattern=DATE_PATTERN)


class TreatmentScheduleCreate(TreatmentScheduleBase):
    patient_id: str
    recommendation_id: Optional[str] = None
    herb_id: Optional[str] = None
    medication_name: str = Field(..., min_length=1, max_length=200)
    dosage: str = Field(..., min_length=1, max_length=100)
    frequency: Literal["once_daily", "twice_daily", "three_times_daily", "as_needed"]
    times_of_day: list[TimeOfDay] = Field(..., min_length=1)
    start_date: str = Field(..., pattern=DATE_PATTERN)
    take_with_food: bool = False


class TreatmentScheduleUpdate(TreatmentScheduleBase):
    medication_name: Optional[str] = Field(None, min_length=1, max_length=200)
    dosage: Optional[str] = Field(None, min_length=1, max_length=100)
    frequency: Optional[Literal["once_daily", "twice_daily", "three_times_daily", "as_needed"]] = None
    times_of_day: Optional[list[TimeOfDay]] = Field(None, min_length=1)
    start_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    take_with_food: Optional[bool] = None
    is_active: Optional[bool] = None


class CheckInCreate(BaseModel):
    patient_id: str
    treatment_schedule_id: str
    status: Literal["taken", "missed", "skipped", "delayed"]
    check_in_date: Optional[str] = Field(None, pattern=DATE_PATTERN)
    taken_at_time: Optional[TimeOfDay] = None
    effectiveness_rating: Optional[StrictInt] = Field(None, ge=1, le=5)
    side_effects: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=500)


class ReminderSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    reminder_methods: Optional[list[Literal["in_app", "email", "line", "sms"]]] = None
    advance_notice_minutes: Optional[StrictInt] = Field(None, ge=0, le=120)
    quiet_hours_start: Optional[TimeOfDay] = None
    quiet_hours_end: Optional[TimeOfDay] = None
    missed_dose_alerts: Optional[bool] = None


class MissedDoseScanRequest(BaseModel):
    day: Optional[str] = Field(None, pattern=DATE_PATTERN)


# Messaging


class MessageCreate(BaseModel):
    patient_id: str
    recipient_type: Literal["practitioner", "support"]
    recipient_id: Optional[str] = None
    subject: Optional[str] = Field(None, max_length=200)
    message_body: str = Field(..., min_length=1, max_length=5000)
    parent_id: Optional[str] = None


class GuestMessageUpdate(BaseModel):
    status: Optional[Literal["open", "resolved"]] = None
    is_read: Optional[bool] = None


# Chat support


class ChatSessionCreate(BaseModel):
    language: Language = "en"


class ChatLanguageUpdate(BaseModel):
    language: Language


class ChatMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class EscalationRequest(BaseModel):
    email: str = Field(..., max_length=255)
    full_name: Optional[str] = Field(None, max_length=100)
    subject: str = Field(..., min_length=5, max_length=200)
    message_body: str = Field(..., min_length=10, max_length=2000)
    include_chat_history: bool = True
    session_id: Optional[str] = None
    chat_history: Optional[list[dict]] = None


class EscalationResponse(BaseModel):
    success: bool
    ticket_id: str
    ticket_type: Literal["patient", "guest"]
    message: str


# Contact


class ContactRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class ContactResponse(BaseModel):
    success: Literal[True] = True
    message: str
    id: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
