# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message template API endpoints.

This module provides endpoints to:
- List, read, create, update and delete templates
- Seed the system default templates
- Duplicate a template as a custom one
- Preview a template against sample data
- Validate a template before saving it

System templates are read-only: updates and deletes return 403.

Example:
    GET /api/v1/templates?category=unexcused_absence
    POST /api/v1/templates/initialize
    GET /api/v1/templates/{template_id}/preview
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field, ValidationError

from src.api.dependencies import get_template_manager, get_template_renderer
from src.domains.templates import (
    MessageTemplate,
    RenderResult,
    TemplateCategory,
    TemplateCreate,
    TemplateManager,
    TemplateNotFoundError,
    TemplateRenderer,
    TemplateUpdate,
    TemplateValidation,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================


class InitializeResponse(BaseModel):
    """Response for seeding default templates."""

    created: int = Field(description="Templates created; 0 when templates already existed")


class DuplicateRequest(BaseModel):
    """Request to duplicate a template."""

    name: str | None = Field(None, min_length=1, max_length=200)


# =============================================================================
# Helpers
# =============================================================================


async def _get_or_404(manager: TemplateManager, template_id: str) -> MessageTemplate:
    template = await manager.get(template_id)
    if template is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template not found: {template_id}",
        )
    return template


def _ensure_editable(template: MessageTemplate) -> None:
    if template.is_system:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="System templates cannot be modified or deleted",
        )


def _ensure_valid(renderer: TemplateRenderer, template: MessageTemplate) -> None:
    validation = renderer.validate_template_format(template)
    if not validation.is_valid:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=validation.errors,
        )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[MessageTemplate])
async def list_templates(
    category: TemplateCategory | None = Query(None, description="Only active templates of this category"),
    manager: TemplateManager = Depends(get_template_manager),
) -> list[MessageTemplate]:
    """List templates, optionally the active ones of a category."""
    if category is not None:
        return await manager.get_by_category(category)
    return await manager.get_all()


@router.post("", response_model=MessageTemplate, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    manager: TemplateManager = Depends(get_template_manager),
    renderer: TemplateRenderer = Depends(get_template_renderer),
) -> MessageTemplate:
    """Create a custom template."""
    template = data.to_template()
    _ensure_valid(renderer, template)
    return await manager.create(template)


@router.post("/initialize", response_model=InitializeResponse)
async def initialize_templates(
    manager: TemplateManager = Depends(get_template_manager),
) -> InitializeResponse:
    """Seed the system default templates into an empty store."""
    return InitializeResponse(created=await manager.initialize_defaults())


@router.post("/validate", response_model=TemplateValidation)
async def validate_template(
    data: TemplateCreate,
    renderer: TemplateRenderer = Depends(get_template_renderer),
) -> TemplateValidation:
    """Check a template's format without saving it."""
    return renderer.validate_template_format(data.to_template())


@router.get("/{template_id}", response_model=MessageTemplate)
async def get_template(
    template_id: str,
    manager: TemplateManager = Depends(get_template_manager),
) -> MessageTemplate:
    """Get a template."""
    return await _get_or_404(manager, template_id)


@router.patch("/{template_id}", response_model=MessageTemplate)
async def update_template(
    template_id: str,
    data: TemplateUpdate,
    manager: TemplateManager = Depends(get_template_manager),
    renderer: TemplateRenderer = Depends(get_template_renderer),
) -> MessageTemplate:
    """Update a custom template. Only the fields sent are changed."""
    existing = await _get_or_404(manager, template_id)
    _ensure_editable(existing)

    changes = data.model_dump(exclude_unset=True)
    try:
        merged = MessageTemplate.model_validate({**existing.model_dump(), **changes})
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=[err["msg"] for err in e.errors()],
        ) from e
    _ensure_valid(renderer, merged)

    if not await manager.update(template_id, data):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template not found: {template_id}",
        )
    return await _get_or_404(manager, template_id)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: str,
    manager: TemplateManager = Depends(get_template_manager),
) -> Response:
    """Delete a custom template."""
    existing = await _get_or_404(manager, template_id)
    _ensure_editable(existing)

    if not await manager.delete(template_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Template not found: {template_id}",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{template_id}/duplicate",
    response_model=MessageTemplate,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_template(
    template_id: str,
    data: DuplicateRequest | None = None,
    manager: TemplateManager = Depends(get_template_manager),
) -> MessageTemplate:
    """Copy a template, system ones included, as a new custom template."""
    try:
        return await manager.duplicate(template_id, data.name if data else None)
    except TemplateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.get("/{template_id}/preview", response_model=RenderResult)
async def preview_template(
    template_id: str,
    manager: TemplateManager = Depends(get_template_manager),
    renderer: TemplateRenderer = Depends(get_template_renderer),
) -> RenderResult:
    """Render a template against the sample student."""
    template = await _get_or_404(manager, template_id)
    return renderer.generate_preview(template)
