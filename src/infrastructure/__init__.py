# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Infrastructure layer for external service integrations.

This package contains clients and managers for:
- Database connections (SQLAlchemy async, SQLite or PostgreSQL)
- Stores for templates, notification history, students and attendance
- Notifications (rate limiting, retries, WhatsApp gateway)
"""
