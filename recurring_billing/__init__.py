# 📄 File: recurring_billing/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# The main entry point that tells Python this folder contains the subscription billing engine
# and records the basic version and package information.
#
# 🧪 Purpose (Technical Summary):
# Package initialization with version info and package-level metadata for the
# recurring billing engine library.
#
# 🔗 Dependencies:
# - Python packaging system
#
# 🔄 Connected Modules / Calls From:
# - engine.py (version reported at startup)
# - Packaging metadata

"""
Recurring Billing Engine - Subscription Billing for Bitcoin and Lightning Payments

Turns billing plans and customers into schedules of periodic payment attempts,
tracks every attempt's outcome, and derives revenue and health metrics.
"""

__version__ = "1.0.0"
__title__ = "Recurring Billing Engine"
__description__ = "Subscription billing engine with scheduling, retries and analytics"
__author__ = "Recurring Billing Team"
__license__ = "MIT"

__all__ = [
    "__version__",
    "__title__",
    "__description__",
    "__author__",
    "__license__",
]
