# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Template rendering.

Rendering runs in a fixed order:
1. Validate: content must be non-empty and every required variable must
   be resolvable, otherwise rendering fails without producing content.
2. Warn about placeholders that are neither declared on the template
   nor global, and about escalation level mismatches.
3. Build the variable dictionary (globals, then template variables,
   then custom values, which win).
4. Substitute ``{key}`` placeholders. Unknown keys stay literal and are
   reported as warnings.

Result texts (errors and warnings) are shown to academy staff and are
written in Spanish, like the messages themselves.
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta

from src.domains.attendance.schemas import ClassInfo, EscalationResult, StudentRecord
from src.domains.templates.defaults import (
    DEFAULT_ACADEMY_NAME,
    DEFAULT_CONTACT_PHONE,
    GLOBAL_VARIABLE_KEYS,
    GLOBAL_VARIABLES,
)
from src.domains.templates.schemas import (
    MessageTemplate,
    MessageVariable,
    RenderContext,
    RenderResult,
    TemplateValidation,
)
from src.utils.datetime import format_date_es, format_time_es, utc_now, weekday_name_es

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")

DEFAULT_MAX_LENGTH = 4096


def extract_placeholders(text: str | None) -> list[str]:
    """List placeholder keys in order of appearance (duplicates kept)."""
    if not text:
        return []
    return PLACEHOLDER_PATTERN.findall(text)


def replace_placeholders(text: str, variables: dict[str, str]) -> str:
    """Substitute known placeholders, leaving unknown ones literal."""

    def _substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        return variables.get(key, match.group(0))

    return PLACEHOLDER_PATTERN.sub(_substitute, text)


class TemplateRenderer:
    """Renders message templates against a render context.

    Attributes:
        academy_name: Value of {academyName}.
        contact_phone: Value of {contactPhone}.
        max_length: Content length above which a warning is emitted.

    Example:
        >>> renderer = TemplateRenderer()
        >>> result = renderer.render(template, RenderContext(student=student))
        >>> if result.success:
        ...     print(result.content)
    """

    def __init__(
        self,
        academy_name: str = DEFAULT_ACADEMY_NAME,
        contact_phone: str = DEFAULT_CONTACT_PHONE,
        max_length: int = DEFAULT_MAX_LENGTH,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.academy_name = academy_name
        self.contact_phone = contact_phone
        self.max_length = max_length
        self._clock = clock

    def render(self, template: MessageTemplate, context: RenderContext) -> RenderResult:
        """Render a template.

        Args:
            template: Template to render.
            context: Values available to the placeholders.

        Returns:
            RenderResult. On failure content is None and errors lists
            the reasons (missing required keys among them).
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not template.content or not template.content.strip():
            errors.append("La plantilla no tiene contenido")

        for variable in template.variables:
            if variable.required and not self._can_resolve(variable, context):
                label = variable.label or variable.key
                errors.append(f"Variable requerida faltante: {label} ({variable.key})")

        if errors:
            logger.debug("Template %s failed validation: %s", template.name, errors)
            return RenderResult(success=False, errors=errors)

        declared = {v.key for v in template.variables} | GLOBAL_VARIABLE_KEYS
        for key in dict.fromkeys(extract_placeholders(template.content)):
            if key not in declared:
                warnings.append(f"Variable no definida encontrada: {{{key}}}")

        if (
            template.escalation_level is not None
            and context.escalation is not None
            and context.escalation.level is not None
            and context.escalation.level != template.escalation_level
        ):
            warnings.append(
                f"Nivel de escalación del contexto ({context.escalation.level}) no coincide "
                f"con el de la plantilla ({template.escalation_level})"
            )

        variables = self.build_variables(context, template.variables)
        content = replace_placeholders(template.content, variables)
        subject = replace_placeholders(template.subject, variables) if template.subject else None

        unresolved = extract_placeholders(content) + extract_placeholders(subject)
        if unresolved:
            warnings.append(f"Variables sin resolver: {', '.join(dict.fromkeys(unresolved))}")

        if len(content) > self.max_length:
            warnings.append(
                f"El mensaje excede {self.max_length} caracteres ({len(content)})"
            )

        return RenderResult(
            success=True,
            content=content,
            subject=subject,
            variables=variables,
            warnings=warnings,
        )

    def build_variables(
        self,
        context: RenderContext,
        template_variables: list[MessageVariable] | None = None,
    ) -> dict[str, str]:
        """Resolve every variable available for a context.

        Args:
            context: Render context.
            template_variables: Variables declared by the template.

        Returns:
            Mapping of placeholder key to value.
        """
        variables: dict[str, str] = {}

        for variable in GLOBAL_VARIABLES:
            value = self._resolve_global(variable.key, context)
            if value is not None:
                variables[variable.key] = value

        for variable in template_variables or []:
            if variable.key in variables:
                continue
            if variable.default_value is not None:
                variables[variable.key] = variable.default_value

        for key, value in context.custom.items():
            variables[key] = str(value)

        return variables

    def _can_resolve(self, variable: MessageVariable, context: RenderContext) -> bool:
        if variable.key in context.custom:
            return True
        if variable.key in GLOBAL_VARIABLE_KEYS:
            return self._resolve_global(variable.key, context) is not None
        return False

    def _resolve_global(self, key: str, context: RenderContext) -> str | None:
        student = context.student
        class_info = context.class_info
        moment = context.attendance_date or self._clock()

        if key == "studentName":
            return student.full_name if student and student.full_name else None
        if key == "studentFirstName":
            return student.first_name if student and student.first_name else None
        if key == "className":
            return class_info.name if class_info and class_info.name else None
        if key == "teacherName":
            return class_info.teacher_name if class_info and class_info.teacher_name else None
        if key == "date":
            return format_date_es(moment)
        if key == "time":
            return format_time_es(moment)
        if key == "dayOfWeek":
            return weekday_name_es(moment)
        if key == "academyName":
            return self.academy_name
        if key == "contactPhone":
            return self.contact_phone
        if key == "nextClassDate":
            # Without a schedule lookup the next session is assumed a week later
            return format_date_es(moment + timedelta(days=7))
        if key == "absenceCount":
            return str(context.escalation.weekly_absences) if context.escalation else "0"
        if key == "escalationLevel":
            if context.escalation and context.escalation.level is not None:
                return str(context.escalation.level)
            return "1"
        return None

    def generate_preview(self, template: MessageTemplate) -> RenderResult:
        """Render a template against a fixed sample context.

        The sample student is María González Rodríguez, enrolled in
        "Violín Intermedio" with Prof. Ana Martínez, with two unexcused
        absences this week. The escalation level matches the template's.
        """
        return self.render(template, self.sample_context(template.escalation_level))

    def sample_context(self, escalation_level: int | None = None) -> RenderContext:
        """Build the documented sample context used for previews."""
        return RenderContext(
            student=StudentRecord(
                id="sample-student-id",
                first_name="María",
                last_name="González Rodríguez",
                guardian_phones=["+584241234567", "+584149876543"],
            ),
            class_info=ClassInfo(
                id="sample-class-id",
                name="Violín Intermedio",
                teacher_name="Prof. Ana Martínez",
            ),
            attendance_date=self._clock(),
            escalation=EscalationResult(
                student_id="sample-student-id",
                weekly_absences=2,
                level=escalation_level or 1,
            ),
            custom={"customVariable": "Valor personalizado"},
        )

    def validate_template_format(self, template: MessageTemplate) -> TemplateValidation:
        """Check a template's format without rendering it.

        Args:
            template: Template to check.

        Returns:
            TemplateValidation with errors for duplicate variable keys,
            unbalanced braces and empty content, and warnings for
            undeclared placeholders and oversized content.
        """
        errors: list[str] = []
        warnings: list[str] = []

        declared = {v.key for v in template.variables} | GLOBAL_VARIABLE_KEYS
        used = extract_placeholders(template.content) + extract_placeholders(template.subject)
        for key in dict.fromkeys(used):
            if key not in declared:
                warnings.append(f"Variable no definida: {{{key}}}")

        for text in (template.content, template.subject or ""):
            stripped = PLACEHOLDER_PATTERN.sub("", text)
            if "{" in stripped or "}" in stripped:
                errors.append("Sintaxis de variables inválida: llaves sin cerrar")
                break

        keys = [v.key for v in template.variables]
        duplicates = sorted({key for key in keys if keys.count(key) > 1})
        if duplicates:
            errors.append(f"Variables duplicadas: {', '.join(duplicates)}")

        if not template.content or not template.content.strip():
            errors.append("El contenido de la plantilla no puede estar vacío")

        if len(template.content) > self.max_length:
            warnings.append(
                f"El contenido es muy largo para WhatsApp (>{self.max_length} caracteres)"
            )

        return TemplateValidation(is_valid=not errors, errors=errors, warnings=warnings)
