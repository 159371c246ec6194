# 📄 File: recurring_billing/shared/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# Marks the 'shared' folder as a Python package containing common tools
# that every part of the billing engine can use, like settings, errors and logging.
#
# 🧪 Purpose (Technical Summary):
# Shared kernel package initialization for configuration, exceptions, the event bus
# and logging utilities used across the billing modules.
#
# 🔗 Dependencies:
# - Python packaging system
#
# 🔄 Connected Modules / Calls From:
# - All billing modules importing shared utilities

"""
Shared Kernel - Common Utilities and Infrastructure

- Configuration management
- Exception hierarchy
- Domain event bus
- Structured logging and helpers
"""

__all__ = []
