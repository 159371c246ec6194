from decimal import Decimal

import pytest

from recurring_billing.engine import RecurringPaymentEngine
from recurring_billing.modules.subscriptions.domain.models import Frequency, SubscriptionPlan
from recurring_billing.modules.subscriptions.domain.services import PlanCatalog
from recurring_billing.shared.config.settings import Settings
from recurring_billing.shared.core.exceptions import DuplicatePlanError, PlanNotFoundError


def _plan(plan_id: str, **overrides) -> SubscriptionPlan:
    data = {
        "id": plan_id,
        "name": plan_id.title(),
        "amount": Decimal("5.00"),
        "frequency": Frequency.WEEKLY,
    }
    data.update(overrides)
    return SubscriptionPlan(**data)


def test_register_and_get_plan():
    catalog = PlanCatalog()
    plan = catalog.register_plan(_plan("starter"))

    assert catalog.get_plan("starter") == plan
    assert plan.interval == 7
    assert "starter" in catalog


def test_duplicate_plan_is_rejected():
    catalog = PlanCatalog([_plan("starter")])

    with pytest.raises(DuplicatePlanError) as exc_info:
        catalog.register_plan(_plan("starter", amount=Decimal("6.00")))

    assert exc_info.value.error_code == "DUPLICATE_RESOURCE"
    assert catalog.get_plan("starter").amount == Decimal("5.00")


def test_unknown_plan_raises():
    with pytest.raises(PlanNotFoundError):
        PlanCatalog().get_plan("missing")


def test_active_listing_keeps_registration_order_and_skips_inactive():
    catalog = PlanCatalog([_plan("a"), _plan("b", is_active=False), _plan("c")])

    assert [p.id for p in catalog.list_active_plans()] == ["a", "c"]
    assert [p.id for p in catalog.list_plans()] == ["a", "b", "c"]


def test_set_plan_active_swaps_in_updated_copy():
    catalog = PlanCatalog([_plan("a")])

    updated = catalog.set_plan_active("a", False)

    assert updated.is_active is False
    assert catalog.list_active_plans() == []
    assert catalog.set_plan_active("a", True).is_active is True
    with pytest.raises(PlanNotFoundError):
        catalog.set_plan_active("missing", True)


def test_plan_currency_is_normalized():
    assert _plan("a", currency=" btc ").currency == "BTC"


def test_engine_seeds_default_plans(gateway, clock):
    engine = RecurringPaymentEngine(settings=Settings(_env_file=None), gateway=gateway, clock=clock)

    plans = engine.list_active_plans()

    assert [p.id for p in plans] == [
        "basic_monthly", "premium_monthly", "business_monthly", "basic_yearly"
    ]
    assert engine.get_plan("basic_yearly").frequency == Frequency.YEARLY
    assert engine.get_plan("premium_monthly").amount == Decimal("19.99")


def test_engine_without_seeding_has_no_plans(engine):
    assert engine.list_active_plans() == []


def test_engine_register_plan_accepts_dict(engine):
    plan = engine.register_plan({
        "id": "pro",
        "name": "Pro",
        "amount": "29.00",
        "frequency": "quarterly",
        "trial_period": 14,
    })

    assert plan.interval == 90
    assert engine.list_active_plans() == [plan]
