"""Form schemas validated right before anything is sent to Supabase."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from theunoia import config
from theunoia.errors import ValidationFailed

# Messages used when pydantic rejects the raw type before our validators run.
_TYPE_MESSAGES = {
    "amount": "Bid amount must be a positive number",
    "budget": "Budget must be a positive number",
    "rating": "Rating must be a number",
    "credits": "Amount must be a positive whole number",
}


def _bounded(value: Optional[str], label: str, low: int, high: int) -> str:
    text = (value or "").strip()
    if len(text) < low:
        raise ValueError(f"{label} must be at least {low} characters")
    if len(text) > high:
        raise ValueError(f"{label} must be less than {high} characters")
    return text


def split_skills(raw) -> List[str]:
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    seen = set()
    skills: List[str] = []
    for part in parts:
        text = str(part).strip()
        if text and text.lower() not in seen:
            seen.add(text.lower())
            skills.append(text)
    return skills


class BidForm(BaseModel):
    amount: float = Field(allow_inf_nan=False)
    proposal: str

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Bid amount must be a positive number")
        return value

    @field_validator("proposal", mode="before")
    @classmethod
    def _proposal_length(cls, value) -> str:
        return _bounded(value, "Proposal", config.PROPOSAL_MIN, config.PROPOSAL_MAX)


class WorkRequirementForm(BaseModel):
    title: str
    description: str
    budget: float = Field(allow_inf_nan=False)
    timeline: str
    skills_required: List[str]
    category: Optional[str] = None
    subcategory: Optional[str] = None
    bidding_deadline: Optional[date] = None

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value) -> str:
        return _bounded(value, "Title", 5, 100)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value) -> str:
        return _bounded(value, "Description", 20, 2000)

    @field_validator("budget")
    @classmethod
    def _budget(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Budget must be a positive number")
        return value

    @field_validator("timeline", mode="before")
    @classmethod
    def _timeline(cls, value) -> str:
        return _bounded(value, "Timeline", 3, 100)

    @field_validator("skills_required", mode="before")
    @classmethod
    def _skills(cls, value) -> List[str]:
        skills = split_skills(value)
        if not skills:
            raise ValueError("At least one skill is required")
        return skills


class PortfolioProjectForm(BaseModel):
    title: str
    description: str
    category: Optional[str] = None
    skills_required: List[str] = []
    client_feedback: Optional[str] = None
    rating: Optional[float] = None
    completed_at: Optional[date] = None

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value) -> str:
        return _bounded(value, "Title", 5, 100)

    @field_validator("description", mode="before")
    @classmethod
    def _description(cls, value) -> str:
        return _bounded(value, "Description", 20, 2000)

    @field_validator("skills_required", mode="before")
    @classmethod
    def _skills(cls, value) -> List[str]:
        return split_skills(value)

    @field_validator("client_feedback", mode="before")
    @classmethod
    def _feedback(cls, value) -> Optional[str]:
        text = (value or "").strip()
        if len(text) > 500:
            raise ValueError("Client feedback must be less than 500 characters")
        return text or None

    @field_validator("rating")
    @classmethod
    def _rating(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and not 0 <= value <= 5:
            raise ValueError("Rating must be between 0 and 5")
        return value


class CreditAdjustmentForm(BaseModel):
    credits: int
    notes: str
    direction: Literal["add", "deduct"] = "add"

    @field_validator("credits")
    @classmethod
    def _credits(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Amount must be a positive whole number")
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def _notes(cls, value) -> str:
        text = (value or "").strip()
        if not text:
            raise ValueError("Please add a note explaining the adjustment")
        return text

    @property
    def signed_amount(self) -> int:
        return self.credits if self.direction == "add" else -self.credits


class RatingForm(BaseModel):
    rating: int
    feedback: Optional[str] = None

    @field_validator("rating")
    @classmethod
    def _stars(cls, value: int) -> int:
        if not 1 <= value <= 5:
            raise ValueError("Please select a rating between 1 and 5 stars")
        return value

    @field_validator("feedback", mode="before")
    @classmethod
    def _feedback(cls, value) -> Optional[str]:
        text = (value or "").strip()
        return text or None


RATING_LABELS = {1: "Poor", 2: "Fair", 3: "Good", 4: "Very Good", 5: "Excellent"}


def first_error(exc: ValidationError) -> str:
    """Return one human readable message for a pydantic ``ValidationError``."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    err = errors[0]
    field = str(err.get("loc", ("",))[0]) if err.get("loc") else ""
    if err.get("type") == "value_error":
        message = str(err.get("msg", ""))
        return message.removeprefix("Value error, ")
    if field in _TYPE_MESSAGES:
        return _TYPE_MESSAGES[field]
    return f"{field.replace('_', ' ').capitalize()}: {err.get('msg')}" if field else str(err.get("msg"))


def parse_form(model, **values):
    """Build ``model`` from ``values`` or raise :class:`ValidationFailed`."""
    try:
        return model(**values)
    except ValidationError as exc:
        raise ValidationFailed(first_error(exc)) from exc


def minimum_bid(budget) -> float:
    try:
        value = float(budget or 0)
    except (TypeError, ValueError):
        return 0.0
    return max(value, 0.0) * config.MIN_BID_RATIO


def is_edu_email(email: Optional[str]) -> bool:
    text = (email or "").strip().lower()
    return any(marker in text for marker in config.EDU_EMAIL_MARKERS)


__all__ = [
    "BidForm",
    "WorkRequirementForm",
    "PortfolioProjectForm",
    "CreditAdjustmentForm",
    "RatingForm",
    "RATING_LABELS",
    "first_error",
    "parse_form",
    "minimum_bid",
    "is_edu_email",
    "split_skills",
]
