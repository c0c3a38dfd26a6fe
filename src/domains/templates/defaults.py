# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Global variables and system default templates.

The default set has one template per message situation: late arrival,
justified absence, and unexcused absence at each escalation level 1-4.
Defaults are seeded as system templates, which cannot be edited or
deleted (they can be duplicated).
"""

from src.domains.templates.schemas import (
    MessageTemplate,
    MessageVariable,
    TemplateCategory,
    VariableType,
)

DEFAULT_ACADEMY_NAME = "Academia Musical El Sistema"
DEFAULT_CONTACT_PHONE = "+58 (XXX) XXX-XXXX"

GLOBAL_VARIABLES: list[MessageVariable] = [
    MessageVariable(
        key="studentName",
        label="Nombre del Estudiante",
        description="Nombre completo del estudiante",
        type=VariableType.STUDENT,
        required=True,
    ),
    MessageVariable(
        key="studentFirstName",
        label="Primer Nombre",
        description="Solo el primer nombre del estudiante",
        type=VariableType.STUDENT,
    ),
    MessageVariable(
        key="className",
        label="Nombre de la Clase",
        description="Nombre de la clase o materia",
        type=VariableType.CLASS,
    ),
    MessageVariable(
        key="teacherName",
        label="Nombre del Maestro",
        description="Nombre del profesor de la clase",
        type=VariableType.CLASS,
    ),
    MessageVariable(
        key="date",
        label="Fecha",
        description="Fecha en formato dd/mm/yyyy",
        type=VariableType.DATE,
    ),
    MessageVariable(
        key="time",
        label="Hora",
        description="Hora en formato HH:mm",
        type=VariableType.TIME,
    ),
    MessageVariable(
        key="dayOfWeek",
        label="Día de la Semana",
        description="Día de la semana",
        type=VariableType.DATE,
    ),
    MessageVariable(
        key="academyName",
        label="Nombre de la Academia",
        description="Nombre oficial de la institución",
        type=VariableType.TEXT,
        default_value=DEFAULT_ACADEMY_NAME,
    ),
    MessageVariable(
        key="contactPhone",
        label="Teléfono de Contacto",
        description="Número de teléfono de la academia",
        type=VariableType.TEXT,
        default_value=DEFAULT_CONTACT_PHONE,
    ),
    MessageVariable(
        key="nextClassDate",
        label="Próxima Clase",
        description="Fecha de la próxima clase",
        type=VariableType.DATE,
    ),
    MessageVariable(
        key="absenceCount",
        label="Número de Ausencias",
        description="Cantidad de ausencias en el período",
        type=VariableType.NUMBER,
    ),
    MessageVariable(
        key="escalationLevel",
        label="Nivel de Escalación",
        description="Nivel de severidad del mensaje (1-4)",
        type=VariableType.NUMBER,
    ),
]

GLOBAL_VARIABLE_KEYS = frozenset(v.key for v in GLOBAL_VARIABLES)


def global_variables(*keys: str) -> list[MessageVariable]:
    """Copies of the named global variables, in the given order."""
    by_key = {v.key: v for v in GLOBAL_VARIABLES}
    return [by_key[key].model_copy() for key in keys]


_LATE = """Estimado representante,

Le informamos que el estudiante {studentName} llegó tarde a su clase de {className} el día {date} a las {time}.

Agradecemos su colaboración para asegurar la puntualidad en futuras clases, ya que esto ayuda al mejor aprovechamiento de las actividades musicales.

Saludos cordiales,
{academyName}"""

_JUSTIFIED = """Estimado representante,

Hemos registrado la ausencia justificada del estudiante {studentName} para la clase de {className} del {date}.

Lamentamos que no pudiera acompañarnos en esta ocasión. Le recordamos que su próxima actividad será el {nextClassDate}.

¡Esperamos contar con su valiosa presencia en la próxima clase! 🎵

Atentamente,
{academyName}"""

_LEVEL_1 = """Estimado representante,

Notamos la ausencia del estudiante {studentName} a su clase de {className} el día {date}.

Sabemos que pueden surgir eventualidades, pero si hay alguna situación particular, por favor comuníquela a la administración.

La participación regular es importante para el desarrollo musical de {studentFirstName}. ¡Le esperamos en su próxima clase! 🎵

Cordialmente,
{academyName}
📞 {contactPhone}"""

_LEVEL_2 = """Estimado representante,

Hemos registrado la SEGUNDA ausencia injustificada del estudiante {studentName} esta semana ({absenceCount} ausencias totales).

Le recordamos que la asistencia regular y la disciplina son fundamentales para el progreso musical y el aprovechamiento de las clases en {academyName}.

Es importante que se comunique con la administración para informar sobre cualquier situación que esté afectando la asistencia.

La constancia es clave en el aprendizaje musical. 📚🎵

Esperamos su pronta comunicación,
{academyName}
📞 {contactPhone}"""

_LEVEL_3 = """IMPORTANTE - TERCERA AUSENCIA INJUSTIFICADA

Estimado representante,

El estudiante {studentName} ha registrado su TERCERA ausencia injustificada esta semana ({absenceCount} ausencias totales).

Esta situación es preocupante y está afectando significativamente el progreso académico musical del estudiante.

SOLICITAMOS que el representante se comunique con la dirección de la academia EN LAS PRÓXIMAS 24 HORAS para proporcionar una explicación sobre las razones de estas inasistencias.

Es necesario evaluar la continuidad en el programa.

⚠️ ACCIÓN REQUERIDA: Contactar inmediatamente
📞 {contactPhone}
🕐 Horario: Lunes a Viernes 8:00 AM - 5:00 PM

{academyName} - Dirección Académica"""

_LEVEL_4 = """🚨 CASO EXTREMO - CITACIÓN OBLIGATORIA 🚨

El estudiante {studentName} ha registrado CUATRO O MÁS ausencias injustificadas esta semana ({absenceCount} ausencias totales).

Esta es una situación CRÍTICA que requiere atención INMEDIATA.

SE REQUIERE la presencia OBLIGATORIA del representante en las oficinas de la sede para una reunión con la dirección académica.

📋 TEMAS A TRATAR:
• Explicación detallada de las ausencias
• Evaluación de continuidad en el programa
• Posibles medidas disciplinarias
• Plan de recuperación académica

🚨 URGENTE: Contactar INMEDIATAMENTE para agendar cita
La situación académica del estudiante está en RIESGO.

📍 {academyName} - Dirección Académica
📞 {contactPhone}
⏰ Horario: Lunes a Viernes 8:00 AM - 5:00 PM

Esta comunicación requiere respuesta inmediata."""


def default_templates() -> list[MessageTemplate]:
    """Build fresh copies of the system default templates."""
    return [
        MessageTemplate(
            name="Tardanza - Recordatorio Amable",
            description="Mensaje suave para tardanzas ocasionales",
            category=TemplateCategory.LATE,
            subject="Tardanza - {studentName}",
            content=_LATE,
            variables=global_variables("studentName", "className", "date", "time", "academyName"),
            is_system=True,
        ),
        MessageTemplate(
            name="Ausencia Justificada - Recordatorio",
            description="Mensaje para ausencias con justificación",
            category=TemplateCategory.JUSTIFIED_ABSENCE,
            subject="Ausencia Justificada - {studentName}",
            content=_JUSTIFIED,
            variables=global_variables(
                "studentName", "className", "date", "nextClassDate", "academyName"
            ),
            is_system=True,
        ),
        MessageTemplate(
            name="Inasistencia Nivel 1 - Primera Ausencia",
            description="Mensaje suave para primera ausencia semanal",
            category=TemplateCategory.UNEXCUSED_ABSENCE,
            escalation_level=1,
            subject="Ausencia - {studentName}",
            content=_LEVEL_1,
            variables=global_variables(
                "studentName",
                "studentFirstName",
                "className",
                "date",
                "academyName",
                "contactPhone",
            ),
            is_system=True,
        ),
        MessageTemplate(
            name="Inasistencia Nivel 2 - Segunda Ausencia",
            description="Mensaje más firme para segunda ausencia",
            category=TemplateCategory.UNEXCUSED_ABSENCE,
            escalation_level=2,
            subject="IMPORTANTE: Segunda Ausencia - {studentName}",
            content=_LEVEL_2,
            variables=global_variables("studentName", "absenceCount", "academyName", "contactPhone"),
            is_system=True,
        ),
        MessageTemplate(
            name="Inasistencia Nivel 3 - Solicitud de Explicación",
            description="Mensaje serio solicitando explicación",
            category=TemplateCategory.UNEXCUSED_ABSENCE,
            escalation_level=3,
            subject="URGENTE: Tercera Ausencia - {studentName}",
            content=_LEVEL_3,
            variables=global_variables("studentName", "absenceCount", "contactPhone", "academyName"),
            is_system=True,
        ),
        MessageTemplate(
            name="Inasistencia Nivel 4 - Citación Obligatoria",
            description="Mensaje crítico para casos extremos",
            category=TemplateCategory.UNEXCUSED_ABSENCE,
            escalation_level=4,
            subject="🚨 CITACIÓN OBLIGATORIA - {studentName}",
            content=_LEVEL_4,
            variables=global_variables("studentName", "absenceCount", "academyName", "contactPhone"),
            is_system=True,
        ),
    ]
