# 📄 File: recurring_billing/modules/subscriptions/domain/services/plan_catalog.py
# 🧭 Purpose (Layman Explanation):
# Keeps the list of plans customers can choose from and makes sure no two plans share an ID
# 🧪 Purpose (Technical Summary):
# In-memory plan registry preserving insertion order, with duplicate detection, lookup,
# active-plan listing and active-flag toggling
# 🔗 Dependencies:
# SubscriptionPlan domain model, shared exceptions, structured logging
# 🔄 Connected Modules / Calls From:
# engine.py (plan registration, plan-based subscriptions, plan listing)

from typing import Dict, Iterable, List, Optional

from recurring_billing.shared.core.exceptions import DuplicatePlanError, PlanNotFoundError
from recurring_billing.shared.utils.logging import get_logger

from ..models.plan import SubscriptionPlan

logger = get_logger(__name__)


class PlanCatalog:
    """Registry of reusable subscription templates."""

    def __init__(self, plans: Optional[Iterable[SubscriptionPlan]] = None):
        self._plans: Dict[str, SubscriptionPlan] = {}
        for plan in plans or ():
            self.register_plan(plan)

    def register_plan(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        """
        Register a new plan.

        Raises:
            DuplicatePlanError: If a plan with the same id exists
        """
        if plan.id in self._plans:
            raise DuplicatePlanError(plan.id)

        self._plans[plan.id] = plan
        logger.debug(f"Plan registered: {plan.id}", plan_id=plan.id, amount=str(plan.amount))
        return plan

    def get_plan(self, plan_id: str) -> SubscriptionPlan:
        """
        Raises:
            PlanNotFoundError: If no plan has this id
        """
        plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_plans(self) -> List[SubscriptionPlan]:
        return list(self._plans.values())

    def list_active_plans(self) -> List[SubscriptionPlan]:
        """Active plans in registration order."""
        return [plan for plan in self._plans.values() if plan.is_active]

    def set_plan_active(self, plan_id: str, active: bool) -> SubscriptionPlan:
        """
        Toggle the active flag of a plan. Subscriptions already created
        from the plan are not affected.

        Raises:
            PlanNotFoundError: If no plan has this id
        """
        plan = self.get_plan(plan_id)
        if plan.is_active == active:
            return plan

        updated = plan.model_copy(update={"is_active": active})
        self._plans[plan_id] = updated
        logger.info(f"Plan {plan_id} {'activated' if active else 'deactivated'}", plan_id=plan_id)
        return updated

    def __contains__(self, plan_id: object) -> bool:
        return plan_id in self._plans

    def __len__(self) -> int:
        return len(self._plans)
