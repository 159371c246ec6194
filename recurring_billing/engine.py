# 📄 File: recurring_billing/engine.py
#
# 🧭 Purpose (Layman Explanation):
# The front desk of the billing engine. Everything a caller wants - signing a customer up, pausing,
# cancelling, looking at payments or revenue - goes through here, and it makes sure all the parts
# behind the desk (plans, records, alarm clock, cashier, reports) work together.
#
# 🧪 Purpose (Technical Summary):
# RecurringPaymentEngine façade wiring PlanCatalog, SubscriptionStore, PaymentScheduler,
# PaymentProcessor, AnalyticsAggregator, EventBus and the PaymentGateway, exposing the public
# API with deep-copied reads, result-returning mutations and an async start/shutdown lifecycle.
#
# 🔗 Dependencies:
# - recurring_billing.shared.config.settings (engine configuration)
# - recurring_billing.shared.utils.logging (structured logging, startup/shutdown events)
# - recurring_billing.modules.subscriptions (domain, DTOs, gateway)
#
# 🔄 Connected Modules / Calls From:
# - Library callers (services embedding the engine)
# - tests

from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from recurring_billing import __version__
from recurring_billing.modules.subscriptions.application.dto import (
    CreateRecurringPaymentRequest,
    CustomerDetails,
)
from recurring_billing.modules.subscriptions.domain.events import (
    SubscriptionEventType,
    subscription_event,
)
from recurring_billing.modules.subscriptions.domain.models import (
    AnalyticsSnapshot,
    PaymentHistoryRecord,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    default_plans,
)
from recurring_billing.modules.subscriptions.domain.services import (
    AnalyticsAggregator,
    OperationResult,
    PaymentProcessor,
    PaymentScheduler,
    PlanCatalog,
    SubscriptionStore,
)
from recurring_billing.modules.subscriptions.infrastructure.gateway import (
    HTTPPaymentGateway,
    PaymentGateway,
)
from recurring_billing.shared.config.settings import Settings, get_settings
from recurring_billing.shared.core.event_bus import EventBus, EventStore
from recurring_billing.shared.core.exceptions import ValidationError
from recurring_billing.shared.utils.helpers import Clock, ensure_utc, utc_now
from recurring_billing.shared.utils.logging import (
    get_logger,
    log_shutdown_event,
    log_startup_event,
    setup_logging,
)

logger = get_logger(__name__)


def _validation_error(error: PydanticValidationError) -> ValidationError:
    """Translate pydantic validation errors into the engine's ValidationError."""
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in error.errors()
    ]
    first = errors[0] if errors else {"field": None, "message": str(error)}
    return ValidationError(
        f"Invalid {first['field']}: {first['message']}" if first["field"] else first["message"],
        field=first["field"] or None,
        details={"errors": errors}
    )


class RecurringPaymentEngine:
    """
    Subscription billing engine.

    Reads return deep copies, so callers never hold live records.
    State-changing operations return an OperationResult instead of
    raising; creation raises ValidationError or PlanNotFoundError.

    Usage:
        async with RecurringPaymentEngine(gateway=my_gateway) as engine:
            subscription = await engine.create_recurring_payment({...})
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        gateway: Optional[PaymentGateway] = None,
        clock: Clock = utc_now,
        event_bus: Optional[EventBus] = None,
        plans: Optional[Iterable[SubscriptionPlan]] = None
    ):
        self.settings = settings or get_settings()
        self._clock = clock

        self.event_bus = event_bus or EventBus(EventStore(max_events=self.settings.EVENT_HISTORY_SIZE))
        self.gateway = gateway or HTTPPaymentGateway.from_settings(self.settings)
        self._owns_gateway = gateway is None

        if plans is None and self.settings.SEED_DEFAULT_PLANS:
            plans = default_plans()
        self.catalog = PlanCatalog(plans)

        self.store = SubscriptionStore(clock=clock)
        self.scheduler = PaymentScheduler(
            handler=self._dispatch,
            clock=clock,
            sweep_source=self.store.billable_schedule,
            sweep_interval=self.settings.SCHEDULER_SWEEP_INTERVAL_SECONDS,
            max_idle=self.settings.SCHEDULER_MAX_IDLE_SECONDS,
        )
        self.processor = PaymentProcessor(
            store=self.store,
            gateway=self.gateway,
            scheduler=self.scheduler,
            event_bus=self.event_bus,
            clock=clock,
            retry_delay=self.settings.retry_delay,
            max_retries=self.settings.BILLING_MAX_RETRIES,
        )
        self.analytics = AnalyticsAggregator(
            clock=clock,
            churn_rate=self.settings.ANALYTICS_CHURN_RATE,
            upcoming_window_days=self.settings.UPCOMING_PAYMENTS_WINDOW_DAYS,
        )
        self._started = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Configure logging and start the scheduler loop."""
        if self._started:
            return

        setup_logging(self.settings)
        log_startup_event(
            self.settings.APP_NAME,
            __version__,
            extra={
                'environment': self.settings.ENVIRONMENT,
                'plans': len(self.catalog),
                'subscriptions': len(self.store),
            }
        )

        self.scheduler.sweep()
        await self.scheduler.start()
        self._started = True
        logger.info("✅ Billing engine startup complete")

    async def shutdown(self) -> None:
        """Stop scheduling, let running attempts finish and release the gateway."""
        if not self._started:
            if self._owns_gateway:
                await self.gateway.close()
            return

        log_shutdown_event(self.settings.APP_NAME, extra={'pending': len(self.scheduler.pending())})
        try:
            await self.scheduler.shutdown()
        finally:
            if self._owns_gateway:
                await self.gateway.close()
            self._started = False
        logger.info("✅ Billing engine shutdown complete")

    async def __aenter__(self) -> "RecurringPaymentEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    @property
    def is_running(self) -> bool:
        return self._started

    # =========================================================================
    # PLANS
    # =========================================================================

    def register_plan(self, plan: Union[SubscriptionPlan, Dict[str, Any]]) -> SubscriptionPlan:
        """
        Raises:
            DuplicatePlanError: If the plan id is taken
            ValidationError: If the plan data is invalid
        """
        if not isinstance(plan, SubscriptionPlan):
            try:
                plan = SubscriptionPlan.model_validate(plan)
            except PydanticValidationError as e:
                raise _validation_error(e) from e
        return self.catalog.register_plan(plan)

    def get_plan(self, plan_id: str) -> SubscriptionPlan:
        return self.catalog.get_plan(plan_id)

    def set_plan_active(self, plan_id: str, active: bool) -> SubscriptionPlan:
        return self.catalog.set_plan_active(plan_id, active)

    def list_plans(self) -> List[SubscriptionPlan]:
        return self.catalog.list_plans()

    def list_active_plans(self) -> List[SubscriptionPlan]:
        return self.catalog.list_active_plans()

    # =========================================================================
    # CREATION
    # =========================================================================

    async def create_recurring_payment(
        self,
        request: Union[CreateRecurringPaymentRequest, Dict[str, Any]]
    ) -> Subscription:
        """
        Create an active subscription and schedule its first charge.

        Raises:
            ValidationError: If the request is invalid
        """
        try:
            request = CreateRecurringPaymentRequest.coerce(request)
        except PydanticValidationError as e:
            raise _validation_error(e) from e

        now = self._clock()
        return await self._open(
            start_date=ensure_utc(request.start_date) or now,
            now=now,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            amount=request.amount,
            currency=request.currency,
            description=request.description,
            frequency=request.frequency,
            payment_method=request.payment_method,
            end_date=request.end_date,
            max_payments=request.max_payments,
            metadata=dict(request.metadata),
        )

    async def create_subscription_from_plan(
        self,
        plan_id: str,
        customer: Union[CustomerDetails, Dict[str, Any]]
    ) -> Subscription:
        """
        Create a subscription from a registered plan.

        A plan trial delays the start date, so the first charge is due one
        interval after the trial ends.

        Raises:
            PlanNotFoundError: If the plan does not exist
            ValidationError: If the plan is inactive or the customer data is invalid
        """
        plan = self.catalog.get_plan(plan_id)
        if not plan.is_active:
            raise ValidationError(
                f"Plan {plan_id} is not active",
                field="plan_id",
                value=plan_id
            )

        try:
            customer = CustomerDetails.coerce(customer)
        except PydanticValidationError as e:
            raise _validation_error(e) from e

        now = self._clock()
        start_date = ensure_utc(customer.start_date) or now
        if plan.trial_period:
            start_date = start_date + timedelta(days=plan.trial_period)

        return await self._open(
            start_date=start_date,
            now=now,
            customer_id=customer.customer_id,
            customer_name=customer.customer_name,
            customer_email=customer.customer_email,
            amount=plan.amount,
            currency=plan.currency,
            description=plan.name,
            frequency=plan.frequency,
            payment_method=customer.payment_method,
            max_payments=plan.max_payments,
            plan_id=plan.id,
            metadata={
                **customer.metadata,
                'plan_id': plan.id,
                'trial_period': plan.trial_period,
            },
        )

    async def _open(self, start_date, now, **terms: Any) -> Subscription:
        try:
            subscription = Subscription.open(start_date, now, **terms)
        except PydanticValidationError as e:
            raise _validation_error(e) from e

        self.store.add(subscription)
        self.scheduler.arm(subscription.id, subscription.next_payment_date)

        logger.log_billing_event(
            "created",
            f"Subscription created for customer {subscription.customer_id}, "
            f"first charge due {subscription.next_payment_date.isoformat()}",
            subscription_id=subscription.id,
            extra={
                'amount': str(subscription.amount),
                'currency': subscription.currency,
                'frequency': subscription.frequency.value,
                'plan_id': subscription.plan_id,
            }
        )
        await self.event_bus.publish(subscription_event(
            SubscriptionEventType.CREATED,
            subscription,
            amount=str(subscription.amount),
            currency=subscription.currency,
            frequency=subscription.frequency.value,
            next_payment_date=subscription.next_payment_date.isoformat(),
            plan_id=subscription.plan_id,
        ))
        return subscription.model_copy(deep=True)

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    async def pause(self, subscription_id: str) -> OperationResult:
        result = await self.store.pause(subscription_id)
        if result:
            self.scheduler.disarm(subscription_id)
            await self._publish(SubscriptionEventType.PAUSED, result.subscription)
        return _detached(result)

    async def resume(self, subscription_id: str) -> OperationResult:
        result = await self.store.resume(subscription_id)
        if result:
            subscription = result.subscription
            self.scheduler.arm(subscription_id, subscription.next_payment_date)
            await self._publish(
                SubscriptionEventType.RESUMED,
                subscription,
                next_payment_date=subscription.next_payment_date.isoformat()
            )
        return _detached(result)

    async def cancel(self, subscription_id: str, reason: Optional[str] = None) -> OperationResult:
        result = await self.store.cancel(subscription_id, reason)
        if result:
            self.scheduler.disarm(subscription_id)
            await self._publish(SubscriptionEventType.CANCELLED, result.subscription, reason=reason)
        return _detached(result)

    async def update_amount(self, subscription_id: str, new_amount) -> OperationResult:
        result = await self.store.update_amount(subscription_id, new_amount)
        if result:
            await self._publish(
                SubscriptionEventType.AMOUNT_UPDATED,
                result.subscription,
                amount=str(result.subscription.amount)
            )
        return _detached(result)

    async def _publish(self, event_type: SubscriptionEventType, subscription: Subscription, **data: Any):
        await self.event_bus.publish(subscription_event(event_type, subscription, **data))

    # =========================================================================
    # BILLING
    # =========================================================================

    async def _dispatch(self, subscription_id: str) -> None:
        await self.processor.process(subscription_id, only_if_due=True)

    async def process_payment(self, subscription_id: str) -> Optional[PaymentHistoryRecord]:
        """
        Run a billing attempt now, regardless of the due date.

        Returns:
            The recorded attempt, or None if the subscription is unknown or not billable
        """
        return await self.processor.process(subscription_id)

    async def run_due(self) -> int:
        """Dispatch every due attempt and wait for them; returns how many ran."""
        return await self.scheduler.run_due()

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        subscription = self.store.get(subscription_id)
        return subscription.model_copy(deep=True) if subscription else None

    def get_customer_subscriptions(self, customer_id: str) -> List[Subscription]:
        return [s.model_copy(deep=True) for s in self.store.by_customer(customer_id)]

    def get_active_subscriptions(self) -> List[Subscription]:
        return [s.model_copy(deep=True) for s in self.store.by_status(SubscriptionStatus.ACTIVE)]

    def get_payment_history(self, subscription_id: str) -> List[PaymentHistoryRecord]:
        return [record.model_copy() for record in self.store.history(subscription_id)]

    def get_analytics(self) -> AnalyticsSnapshot:
        return self.analytics.snapshot(self.store.all(), self.store.all_history())

    def get_upcoming_payments(self, days: Optional[int] = None) -> List[Subscription]:
        if days is None:
            days = self.settings.UPCOMING_PAYMENTS_WINDOW_DAYS
        return [s.model_copy(deep=True) for s in self.analytics.upcoming(self.store.all(), days)]


def _detached(result: OperationResult) -> OperationResult:
    if result:
        return OperationResult.ok(result.subscription.model_copy(deep=True))
    return result
