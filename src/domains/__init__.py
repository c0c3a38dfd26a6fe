# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for the attendance notification service.

This package contains domain services that encapsulate business logic.
Each domain module orchestrates operations across stores and the
message transport.

Domains:
    contacts: Guardian phone validation and normalization.
    attendance: Student and attendance models, weekly escalation.
    templates: Message template management and rendering.
    notification: Batch notification orchestration.
"""
