# 📄 File: recurring_billing/shared/utils/__init__.py

# 🧭 Purpose (Layman Explanation):
# Sets up a collection of helpful tools that other parts of the engine use
# for common tasks like logging, making IDs and reading the clock.

# 🧪 Purpose (Technical Summary):
# Initializes the utilities package with structured logging utilities and general
# helpers used across the billing engine.

# 🔗 Dependencies:
# - logging: Structured logging utilities
# - helpers: Identifier and datetime helpers

# 🔄 Connected Modules / Calls From:
# Used by: All engine modules

from .helpers import Clock, ensure_utc, generate_id, to_decimal, utc_now
from .logging import get_logger, log_context, setup_logging

__all__ = [
    "Clock",
    "ensure_utc",
    "generate_id",
    "to_decimal",
    "utc_now",
    "get_logger",
    "log_context",
    "setup_logging",
]
