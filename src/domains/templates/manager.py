# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Message template management.

TemplateManager wraps a TemplateStore with:
- A read cache with a freshness window (5 minutes by default)
- Protection of system templates (no update, no delete)
- Seeding of the system default set
- Usage bookkeeping after deliveries

Writes invalidate the affected cache entries.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from src.domains.templates.defaults import default_templates
from src.domains.templates.schemas import (
    MessageTemplate,
    TemplateCategory,
    TemplateUpdate,
    TemplateUsage,
)
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.infrastructure.stores.base import TemplateStore

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 300


class TemplateServiceError(Exception):
    """Base exception for template operations."""

    pass


class TemplateNotFoundError(TemplateServiceError):
    """Raised when a template does not exist."""

    pass


class TemplateManager:
    """Template CRUD with caching and system template protection.

    Attributes:
        cache_ttl: Freshness window of cached reads.

    Example:
        >>> manager = TemplateManager(store)
        >>> await manager.initialize_defaults()
        6
        >>> template = await manager.select_template(TemplateCategory.UNEXCUSED_ABSENCE, 3)
    """

    def __init__(
        self,
        store: "TemplateStore",
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Template persistence.
            cache_ttl_seconds: Freshness window of cached reads.
            clock: Time source, injectable for tests.
        """
        self._store = store
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self._clock = clock
        self._cache: dict[str, tuple[datetime, MessageTemplate]] = {}
        self._category_cache: dict[TemplateCategory, tuple[datetime, list[MessageTemplate]]] = {}

    def _is_fresh(self, cached_at: datetime) -> bool:
        return self._clock() - cached_at < self.cache_ttl

    def _remember(self, template: MessageTemplate) -> None:
        if template.id:
            self._cache[template.id] = (self._clock(), template)

    def invalidate(self, template_id: str | None = None) -> None:
        """Drop cached entries.

        Args:
            template_id: Template to forget; all entries when None.
        """
        if template_id is None:
            self._cache.clear()
        else:
            self._cache.pop(template_id, None)
        self._category_cache.clear()

    async def get_all(self) -> list[MessageTemplate]:
        """List every template. Refreshes the per-template cache."""
        templates = await self._store.list_all()
        for template in templates:
            self._remember(template)
        logger.debug("Loaded %d templates", len(templates))
        return templates

    async def get(self, template_id: str) -> MessageTemplate | None:
        """Get a template, from cache while fresh.

        Args:
            template_id: Template identifier.

        Returns:
            The template, or None if it does not exist.
        """
        cached = self._cache.get(template_id)
        if cached and self._is_fresh(cached[0]):
            return cached[1]

        template = await self._store.get(template_id)
        if template is None:
            self._cache.pop(template_id, None)
            return None

        self._remember(template)
        return template

    async def get_by_category(self, category: TemplateCategory) -> list[MessageTemplate]:
        """Active templates of a category, ordered by escalation level then name."""
        cached = self._category_cache.get(category)
        if cached and self._is_fresh(cached[0]):
            return cached[1]

        templates = await self._store.list_by_category(category, active_only=True)
        self._category_cache[category] = (self._clock(), templates)
        for template in templates:
            self._remember(template)
        return templates

    async def select_template(
        self,
        category: TemplateCategory,
        escalation_level: int | None = None,
    ) -> MessageTemplate | None:
        """Pick the template to use for a category and level.

        Preference order: exact level match, then a level-less template
        of the category, then the first active template of the category.

        Args:
            category: Message category.
            escalation_level: Level for unexcused absences.

        Returns:
            The selected template, or None if the category has none.
        """
        templates = await self.get_by_category(category)
        if not templates:
            return None

        if escalation_level is not None:
            for template in templates:
                if template.escalation_level == escalation_level:
                    return template

        for template in templates:
            if template.escalation_level is None:
                return template

        return templates[0]

    async def create(self, template: MessageTemplate) -> MessageTemplate:
        """Persist a new template with zeroed usage.

        Args:
            template: Template to store. Its id is ignored.

        Returns:
            Stored template with id and timestamps.
        """
        now = self._clock()
        to_store = template.model_copy(
            update={
                "id": None,
                "created_at": now,
                "updated_at": now,
                "usage": TemplateUsage(),
            }
        )
        created = await self._store.create(to_store)
        self.invalidate(created.id)
        logger.info("Template created: %s (%s)", created.id, created.name)
        return created

    async def update(
        self,
        template_id: str,
        updates: TemplateUpdate | dict[str, Any],
    ) -> bool:
        """Update a custom template.

        Args:
            template_id: Template identifier.
            updates: Fields to change. Only explicitly set fields apply.

        Returns:
            True if updated, False for system or unknown templates.
        """
        existing = await self.get(template_id)
        if existing is None:
            logger.warning("Template not found for update: %s", template_id)
            return False
        if existing.is_system:
            logger.warning("System templates cannot be modified: %s", template_id)
            return False

        if isinstance(updates, TemplateUpdate):
            changes = updates.model_dump(exclude_unset=True)
        else:
            changes = dict(updates)
        for protected in ("id", "is_system", "created_at", "usage"):
            changes.pop(protected, None)
        changes["updated_at"] = self._clock()

        updated = await self._store.update(template_id, changes)
        self.invalidate(template_id)
        if updated is None:
            return False

        logger.info("Template updated: %s", template_id)
        return True

    async def delete(self, template_id: str) -> bool:
        """Delete a custom template.

        Returns:
            True if deleted, False for system or unknown templates.
        """
        existing = await self.get(template_id)
        if existing is None:
            return False
        if existing.is_system:
            logger.warning("System templates cannot be deleted: %s", template_id)
            return False

        deleted = await self._store.delete(template_id)
        self.invalidate(template_id)
        if deleted:
            logger.info("Template deleted: %s", template_id)
        return deleted

    async def duplicate(self, template_id: str, new_name: str | None = None) -> MessageTemplate:
        """Copy a template as a new custom template.

        Args:
            template_id: Template to copy.
            new_name: Name of the copy; defaults to "<name> (Copia)".

        Returns:
            The stored copy, never a system template.

        Raises:
            TemplateNotFoundError: If the original does not exist.
        """
        original = await self.get(template_id)
        if original is None:
            raise TemplateNotFoundError(f"Template not found: {template_id}")

        copy = original.model_copy(
            update={
                "name": new_name or f"{original.name} (Copia)",
                "is_system": False,
            },
            deep=True,
        )
        return await self.create(copy)

    async def initialize_defaults(self) -> int:
        """Seed the system default templates into an empty store.

        Returns:
            Number of templates created (0 if the store was not empty).
        """
        existing = await self.get_all()
        if existing:
            logger.info("Found %d existing templates, skipping defaults", len(existing))
            return 0

        defaults = default_templates()
        for template in defaults:
            await self.create(template)

        logger.info("Created %d default templates", len(defaults))
        return len(defaults)

    async def update_usage_stats(self, template_id: str, sent: bool) -> None:
        """Record a delivery attempt made with a template.

        Usage is bookkeeping, so system templates are updated too.

        Args:
            template_id: Template used.
            sent: Whether the delivery succeeded.
        """
        template = await self.get(template_id)
        if template is None:
            return

        usage = template.usage
        total = usage.total_sent + 1
        successes = usage.success_rate * usage.total_sent + (1 if sent else 0)
        new_usage = TemplateUsage(
            total_sent=total,
            last_used=self._clock(),
            success_rate=successes / total,
        )

        await self._store.update(template_id, {"usage": new_usage})
        self.invalidate(template_id)
