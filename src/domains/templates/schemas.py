# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message template schemas.

Templates are plain text with ``{key}`` placeholders. Each template
declares the variables it uses; variables flagged as required must be
resolvable when the template is rendered.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from src.domains.attendance.schemas import ClassInfo, EscalationResult, StudentRecord


class TemplateCategory(str, Enum):
    """Message category a template serves."""

    LATE = "late"
    JUSTIFIED_ABSENCE = "justified_absence"
    UNEXCUSED_ABSENCE = "unexcused_absence"
    GENERAL = "general"
    CUSTOM = "custom"


class VariableType(str, Enum):
    """Kind of value a template variable holds."""

    TEXT = "text"
    DATE = "date"
    TIME = "time"
    NUMBER = "number"
    STUDENT = "student"
    CLASS = "class"
    CUSTOM = "custom"


class MessageVariable(BaseModel):
    """Variable a template may reference as ``{key}``.

    Attributes:
        key: Placeholder name.
        label: Human readable label.
        description: What the variable contains.
        type: Kind of value.
        required: Rendering fails when a required variable cannot be resolved.
        default_value: Value used when nothing else resolves the key.
    """

    key: str = Field(min_length=1)
    label: str = ""
    description: str = ""
    type: VariableType = VariableType.TEXT
    required: bool = False
    default_value: str | None = None


class TemplateUsage(BaseModel):
    """Delivery bookkeeping of a template.

    Attributes:
        total_sent: Deliveries attempted with this template.
        last_used: Time of the last attempt.
        success_rate: Fraction of successful attempts (0.0 - 1.0).
    """

    total_sent: int = 0
    last_used: datetime | None = None
    success_rate: float = 0.0


class MessageTemplate(BaseModel):
    """Stored message template."""

    id: str | None = None
    name: str = Field(min_length=1)
    description: str = ""
    category: TemplateCategory
    escalation_level: int | None = Field(default=None, ge=1, le=4)
    subject: str | None = None
    content: str
    variables: list[MessageVariable] = Field(default_factory=list)
    is_active: bool = True
    is_system: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: str | None = None
    usage: TemplateUsage = Field(default_factory=TemplateUsage)


class TemplateCreate(BaseModel):
    """Request body for creating a template."""

    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: TemplateCategory
    escalation_level: int | None = Field(default=None, ge=1, le=4)
    subject: str | None = None
    content: str = Field(min_length=1)
    variables: list[MessageVariable] = Field(default_factory=list)
    is_active: bool = True
    created_by: str | None = None

    def to_template(self) -> MessageTemplate:
        """Build an unsaved, non-system template."""
        return MessageTemplate(**self.model_dump(), is_system=False)


class TemplateUpdate(BaseModel):
    """Partial update of a template. Unset fields are left untouched."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category: TemplateCategory | None = None
    escalation_level: int | None = Field(default=None, ge=1, le=4)
    subject: str | None = None
    content: str | None = Field(default=None, min_length=1)
    variables: list[MessageVariable] | None = None
    is_active: bool | None = None


class RenderContext(BaseModel):
    """Values available while rendering one message.

    Attributes:
        student: Student the message is about.
        class_info: Class the event happened in.
        attendance_date: Day of the attendance event.
        escalation: Weekly escalation outcome, for the absence category.
        custom: Extra values that override global variables.
    """

    student: StudentRecord | None = None
    class_info: ClassInfo | None = None
    attendance_date: datetime | None = None
    escalation: EscalationResult | None = None
    custom: dict[str, str] = Field(default_factory=dict)


class RenderResult(BaseModel):
    """Outcome of rendering a template.

    Content is only present on success.
    """

    success: bool
    content: str | None = None
    subject: str | None = None
    variables: dict[str, str] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class TemplateValidation(BaseModel):
    """Outcome of checking a template's format."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
