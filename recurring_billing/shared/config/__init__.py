# 📄 File: recurring_billing/shared/config/__init__.py
#
# 🧭 Purpose (Layman Explanation):
# Holds the settings that tell the billing engine how long to wait before retrying,
# where the payment gateway lives and how to log.
#
# 🧪 Purpose (Technical Summary):
# Configuration package initialization exporting the settings model and its cached factory.
#
# 🔗 Dependencies:
# - settings.py (application settings)
#
# 🔄 Connected Modules / Calls From:
# - engine.py, scheduler, payment processor, gateway clients, logging setup

from .settings import get_settings, Settings

__all__ = [
    "get_settings",
    "Settings",
]
