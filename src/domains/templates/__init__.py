# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message template domain package.

This package provides template services and schemas:
- TemplateManager: Cached template CRUD and default seeding
- TemplateRenderer: Placeholder substitution with validation
- Schemas: Template, variable and render models
"""

from src.domains.templates.defaults import (
    GLOBAL_VARIABLE_KEYS,
    GLOBAL_VARIABLES,
    default_templates,
)
from src.domains.templates.manager import (
    TemplateManager,
    TemplateNotFoundError,
    TemplateServiceError,
)
from src.domains.templates.renderer import TemplateRenderer, extract_placeholders
from src.domains.templates.schemas import (
    MessageTemplate,
    MessageVariable,
    RenderContext,
    RenderResult,
    TemplateCategory,
    TemplateCreate,
    TemplateUpdate,
    TemplateUsage,
    TemplateValidation,
    VariableType,
)

__all__ = [
    "GLOBAL_VARIABLES",
    "GLOBAL_VARIABLE_KEYS",
    "MessageTemplate",
    "MessageVariable",
    "RenderContext",
    "RenderResult",
    "TemplateCategory",
    "TemplateCreate",
    "TemplateManager",
    "TemplateNotFoundError",
    "TemplateRenderer",
    "TemplateServiceError",
    "TemplateUpdate",
    "TemplateUsage",
    "TemplateValidation",
    "VariableType",
    "default_templates",
    "extract_placeholders",
]
