# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pre-send validation of notification batches.

Checks run before anything is rendered or sent:
- Student data: the record exists, has first and last name and at least
  one valid guardian phone
- Sending time: no messages between 23:00 and 06:00 local time
- Custom message content: non-empty and within the transport limit

Messages in the results are shown to academy staff and are written in
Spanish.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from src.domains.attendance.schemas import StudentRecord
from src.domains.contacts.phone import PhoneNormalizer
from src.domains.templates.renderer import extract_placeholders

if TYPE_CHECKING:
    from src.infrastructure.stores.base import StudentDataSource

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096
LONG_MESSAGE_LENGTH = 1000
BULK_PHONE_THRESHOLD = 50

QUIET_HOURS_START = 23
QUIET_HOURS_END = 6
OPTIMAL_HOURS_START = 8
OPTIMAL_HOURS_END = 21

SPAM_KEYWORDS = ("urgente", "inmediato", "crisis", "!!!")


class ValidationOutcome(BaseModel):
    """Errors block, warnings inform."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class StudentValidation(BaseModel):
    """Contact validation of one student.

    Attributes:
        id: Student identifier.
        name: Full name, or a placeholder when the record is missing.
        phone_numbers: Normalized valid guardian phones.
        is_valid: Whether the student can be notified.
        errors: Reasons the student cannot be notified.
        warnings: Problems that do not block delivery, such as one
            invalid phone next to a valid one.
        record: The student record, when found.
    """

    id: str
    name: str = ""
    phone_numbers: list[str] = Field(default_factory=list)
    is_valid: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    record: StudentRecord | None = None


class BulkValidation(BaseModel):
    """Validation of a list of students."""

    valid: list[StudentValidation] = Field(default_factory=list)
    invalid: list[StudentValidation] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.valid) + len(self.invalid)

    @property
    def total_phone_numbers(self) -> int:
        return sum(len(s.phone_numbers) for s in self.valid)


class RequestValidation(BaseModel):
    """Full pre-send validation of a batch."""

    can_proceed: bool
    students: BulkValidation
    sending_time: ValidationOutcome
    message: ValidationOutcome | None = None
    recommendations: list[str] = Field(default_factory=list)


class NotificationValidator:
    """Validates students, sending time and message content.

    Example:
        >>> validator = NotificationValidator(student_source)
        >>> outcome = await validator.validate_request(["s1", "s2"], now=now)
        >>> outcome.can_proceed
        True
    """

    def __init__(
        self,
        student_source: "StudentDataSource",
        phone_normalizer: PhoneNormalizer | None = None,
        bulk_threshold: int = BULK_PHONE_THRESHOLD,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        self._students = student_source
        self._phones = phone_normalizer or PhoneNormalizer()
        self.bulk_threshold = bulk_threshold
        self.max_message_length = max_message_length

    def validate_student(self, student: StudentRecord) -> StudentValidation:
        """Validate the contact data of one student.

        Invalid phones are reported as warnings; the student is only
        invalid when no valid phone is left.
        """
        errors: list[str] = []
        warnings: list[str] = []
        phones: list[str] = []

        if not student.id or not student.id.strip():
            errors.append("ID de estudiante requerido")
        if not student.first_name.strip():
            errors.append("Nombre del estudiante requerido")
        if not student.last_name.strip():
            errors.append("Apellido del estudiante requerido")

        for raw in student.guardian_phones:
            if self._phones.validate(raw):
                normalized = self._phones.normalize(raw)
                if normalized not in phones:
                    phones.append(normalized)
            else:
                warnings.append(f"Número telefónico inválido: {raw}")

        if not phones:
            errors.append("Al menos un número telefónico válido es requerido")
            errors.extend(warnings)
            warnings = []

        return StudentValidation(
            id=student.id,
            name=student.full_name,
            phone_numbers=phones,
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            record=student,
        )

    async def validate_students(self, student_ids: list[str]) -> BulkValidation:
        """Resolve and validate each student id.

        A failing lookup marks only that student invalid. Repeated ids
        are validated once.
        """
        bulk = BulkValidation()
        unique_ids = list(dict.fromkeys(student_ids))
        logger.info("Validating %d students", len(unique_ids))

        for student_id in unique_ids:
            try:
                student = await self._students.get_student_data(student_id)
            except Exception as e:
                logger.warning("Student lookup failed for %s: %s", student_id, e)
                bulk.invalid.append(
                    StudentValidation(
                        id=student_id,
                        name=f"Estudiante {student_id}",
                        errors=[f"Error consultando datos: {e}"],
                    )
                )
                continue

            if student is None:
                bulk.invalid.append(
                    StudentValidation(
                        id=student_id,
                        name=f"Estudiante {student_id}",
                        errors=["Estudiante no encontrado en la base de datos"],
                    )
                )
                continue

            validation = self.validate_student(student)
            if validation.is_valid:
                bulk.valid.append(validation)
            else:
                bulk.invalid.append(validation)

        logger.info(
            "Validation finished: %d valid, %d invalid",
            len(bulk.valid),
            len(bulk.invalid),
        )
        return bulk

    def validate_message_content(self, message: str | None) -> ValidationOutcome:
        """Check a free-text message before it is sent."""
        if not message or not message.strip():
            return ValidationOutcome(is_valid=False, errors=["Contenido del mensaje requerido"])

        errors: list[str] = []
        warnings: list[str] = []

        if len(message) > self.max_message_length:
            errors.append(
                f"Mensaje excede límite de {self.max_message_length} caracteres "
                f"(actual: {len(message)})"
            )
        if len(message) > LONG_MESSAGE_LENGTH:
            warnings.append("Mensaje muy largo, considere reducir contenido")

        placeholders = extract_placeholders(message)
        if placeholders:
            listed = ", ".join(f"{{{p}}}" for p in dict.fromkeys(placeholders))
            warnings.append(f"Placeholders sin reemplazar: {listed}")

        lowered = message.lower()
        if sum(1 for keyword in SPAM_KEYWORDS if keyword in lowered) > 2:
            warnings.append("Mensaje puede parecer spam por uso excesivo de palabras urgentes")

        return ValidationOutcome(is_valid=not errors, errors=errors, warnings=warnings)

    def validate_sending_time(self, moment: datetime) -> ValidationOutcome:
        """Check the local time of a send.

        Args:
            moment: Local time at which messages would go out.
        """
        errors: list[str] = []
        warnings: list[str] = []
        hour = moment.hour

        if hour >= QUIET_HOURS_START or hour < QUIET_HOURS_END:
            errors.append("No se pueden enviar notificaciones entre 11:00 PM y 6:00 AM")
        if hour < OPTIMAL_HOURS_START:
            warnings.append("Envío muy temprano, algunos padres pueden estar durmiendo")
        if hour > OPTIMAL_HOURS_END:
            warnings.append("Envío tardío, considere enviar más temprano")
        if moment.weekday() >= 5:
            warnings.append("Envío en fin de semana, considere esperar al día laboral")

        return ValidationOutcome(is_valid=not errors, errors=errors, warnings=warnings)

    async def validate_request(
        self,
        student_ids: list[str],
        now: datetime,
        custom_message: str | None = None,
        enforce_sending_time: bool = True,
    ) -> RequestValidation:
        """Validate a whole batch.

        Args:
            student_ids: Students to notify.
            now: Local time of the send.
            custom_message: Free text replacing the template, if any.
            enforce_sending_time: Whether quiet hours block the batch.
                Dry runs only report them.

        Returns:
            RequestValidation. can_proceed requires at least one valid
            student, an allowed sending time and valid custom content.
        """
        students = await self.validate_students(student_ids)
        sending_time = self.validate_sending_time(now)
        message = (
            self.validate_message_content(custom_message) if custom_message is not None else None
        )

        recommendations: list[str] = []
        if students.invalid:
            recommendations.append(f"{len(students.invalid)} estudiantes tienen datos inválidos")
        if sending_time.warnings:
            recommendations.append("Considere enviar en horario óptimo (8 AM - 9 PM)")
        if students.total_phone_numbers > self.bulk_threshold:
            recommendations.append("Envío masivo detectado, considere enviar en lotes")

        can_proceed = (
            bool(students.valid)
            and (sending_time.is_valid or not enforce_sending_time)
            and (message is None or message.is_valid)
        )
        return RequestValidation(
            can_proceed=can_proceed,
            students=students,
            sending_time=sending_time,
            message=message,
            recommendations=recommendations,
        )
