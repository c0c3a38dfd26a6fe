"""Academy attendance notification service.

Weekly absence escalation, templated guardian messages and rate-limited,
retried WhatsApp delivery for a music academy.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
