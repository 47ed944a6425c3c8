"""
Unit tests for CheckoutService start and finalize flows.
"""

import pytest

from app.domain.subscription import (
    CreditTransaction,
    SubscriptionStatus,
    SubscriptionUpsert,
    TransactionType,
)
from app.infrastructure.exceptions import (
    AlreadySubscribedError,
    CheckoutNotPaidError,
    PlanNotFoundError,
    ValidationError,
)
from app.infrastructure.services.checkout_service import CheckoutService, require_plan


PERIOD_START = 1_760_000_000
PERIOD_END = 1_762_592_000


def paid_session(user_id: str, price_id: str, **overrides) -> dict:
    session = {
        "id": "cs_1",
        "payment_status": "paid",
        "customer": "cus_1",
        "invoice": None,
        "amount_total": 2500,
        "metadata": {"user_id": user_id},
        "line_items": {"data": [{"price": {"id": price_id}}]},
        "subscription": {
            "id": "sub_1",
            "status": "active",
            "cancel_at_period_end": False,
            "latest_invoice": "in_1",
            "items": {"data": [{
                "price": {"id": price_id, "product": "prod_explorer"},
                "current_period_start": PERIOD_START,
                "current_period_end": PERIOD_END,
            }]},
        },
    }
    session.update(overrides)
    return session


@pytest.fixture
def service(uow, stripe_service, test_settings) -> CheckoutService:
    return CheckoutService(uow, stripe_service, test_settings)


class TestRequirePlan:

    def test_known_price(self, explorer_plan):
        assert require_plan(explorer_plan.stripe_price_id) == explorer_plan

    @pytest.mark.parametrize("price_id", [None, "", "price_nope", "prod_explorer"])
    def test_unknown_price_is_validation_error(self, price_id):
        with pytest.raises(PlanNotFoundError) as exc_info:
            require_plan(price_id)

        assert isinstance(exc_info.value, ValidationError)
        assert exc_info.value.message == "Invalid plan selected"


class TestRedirectUrls:

    def test_success_url_keeps_placeholder(self, service):
        assert service.success_url == (
            "https://app.coachbridge.test/success?session_id={CHECKOUT_SESSION_ID}"
        )

    def test_cancel_url(self, service):
        assert service.cancel_url.startswith("https://app.coachbridge.test/pricing?error=")


class TestStartCheckout:

    @pytest.mark.asyncio
    async def test_creates_customer_once(self, service, stripe_service, uow, user, explorer_plan):
        stripe_service.create_customer.return_value = {"id": "cus_new"}
        stripe_service.create_checkout_session.return_value = {
            "id": "cs_1", "url": "https://checkout.stripe.com/cs_1",
        }

        first = await service.start_checkout(user, explorer_plan.stripe_price_id)
        await service.start_checkout(user, explorer_plan.stripe_price_id)

        assert first.session_id == "cs_1"
        assert first.url == "https://checkout.stripe.com/cs_1"
        stripe_service.create_customer.assert_awaited_once()
        assert [c.customer_id for c in uow.store.customers] == ["cus_new"]
        _, kwargs = stripe_service.create_checkout_session.call_args
        assert kwargs["customer_id"] == "cus_new"
        assert kwargs["plan"] == explorer_plan

    @pytest.mark.asyncio
    async def test_unknown_price(self, service, stripe_service, user):
        with pytest.raises(PlanNotFoundError):
            await service.start_checkout(user, "price_unknown")
        stripe_service.create_checkout_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_subscribed(self, service, stripe_service, uow, user, explorer_plan):
        await uow.subscriptions.upsert(SubscriptionUpsert(
            user_id=user.id, stripe_subscription_id="sub_1", status=SubscriptionStatus.ACTIVE,
        ))

        with pytest.raises(AlreadySubscribedError):
            await service.start_checkout(user, explorer_plan.stripe_price_id)
        stripe_service.create_checkout_session.assert_not_called()


class TestCompleteCheckout:

    @pytest.mark.asyncio
    async def test_records_subscription_and_credits(self, service, stripe_service, uow, user, explorer_plan):
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            user.id, explorer_plan.stripe_price_id
        )

        result = await service.complete_checkout(user, "cs_1")

        assert result.success is True
        assert result.already_processed is False
        assert result.plan.credits == explorer_plan.monthly_credits
        assert result.plan.price == 25.0
        assert result.session.subscription == "sub_1"

        subscription = uow.store.subscriptions[user.id]
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.plan_name == explorer_plan.name
        assert subscription.credits_allocated == 50
        assert subscription.credits_remaining == 50
        assert subscription.current_period_end is not None

        [entry] = uow.store.transactions
        assert entry.idempotency_key == "purchase:sub_1"
        assert entry.reference_id == "cs_1"
        assert entry.amount_paid == 2500
        assert uow.commits == 1

    @pytest.mark.asyncio
    async def test_second_call_is_already_processed(self, service, stripe_service, uow, user, explorer_plan):
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            user.id, explorer_plan.stripe_price_id
        )

        await service.complete_checkout(user, "cs_1")
        again = await service.complete_checkout(user, "cs_1")

        assert again.already_processed is True
        assert again.plan.credits == 50
        assert uow.store.subscriptions[user.id].credits_remaining == 50
        stripe_service.retrieve_checkout_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_after_webhook_grant_does_not_double(self, service, stripe_service, uow, user, explorer_plan):
        await uow.subscriptions.upsert(SubscriptionUpsert(
            user_id=user.id, stripe_subscription_id="sub_1", status=SubscriptionStatus.ACTIVE,
        ))
        await uow.subscriptions.increment_credits(user.id, 50)
        await uow.transactions.add(CreditTransaction(
            user_id=user.id,
            credits_granted=50,
            transaction_type=TransactionType.PURCHASE,
            reference_id="sub_1",
            idempotency_key="purchase:sub_1",
        ))
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            user.id, explorer_plan.stripe_price_id
        )

        await service.complete_checkout(user, "cs_1")

        assert uow.store.subscriptions[user.id].credits_remaining == 50
        assert len(uow.store.transactions) == 1

    @pytest.mark.asyncio
    async def test_unknown_session(self, service, stripe_service, user):
        stripe_service.retrieve_checkout_session.return_value = None

        with pytest.raises(ValidationError) as exc_info:
            await service.complete_checkout(user, "cs_missing")
        assert exc_info.value.message == "Invalid session ID"

    @pytest.mark.asyncio
    async def test_unpaid_session(self, service, stripe_service, uow, user, explorer_plan):
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            user.id, explorer_plan.stripe_price_id, payment_status="unpaid"
        )

        with pytest.raises(CheckoutNotPaidError):
            await service.complete_checkout(user, "cs_1")
        assert uow.store.transactions == []

    @pytest.mark.asyncio
    async def test_session_of_another_user(self, service, stripe_service, uow, user, explorer_plan):
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            "someone-else", explorer_plan.stripe_price_id
        )

        with pytest.raises(ValidationError):
            await service.complete_checkout(user, "cs_1")
        assert uow.store.subscriptions == {}

    @pytest.mark.asyncio
    async def test_unknown_price_in_session(self, service, stripe_service, user):
        stripe_service.retrieve_checkout_session.return_value = paid_session(user.id, "price_unknown")

        with pytest.raises(PlanNotFoundError):
            await service.complete_checkout(user, "cs_1")

    @pytest.mark.asyncio
    async def test_session_without_customer(self, service, stripe_service, user, explorer_plan):
        stripe_service.retrieve_checkout_session.return_value = paid_session(
            user.id, explorer_plan.stripe_price_id, customer=None
        )

        with pytest.raises(ValidationError):
            await service.complete_checkout(user, "cs_1")

    @pytest.mark.asyncio
    async def test_unexpanded_subscription_is_fetched(self, service, stripe_service, uow, user, explorer_plan):
        session = paid_session(user.id, explorer_plan.stripe_price_id)
        stripe_service.retrieve_subscription.return_value = session["subscription"]
        session["subscription"] = "sub_1"
        stripe_service.retrieve_checkout_session.return_value = session

        await service.complete_checkout(user, "cs_1")

        stripe_service.retrieve_subscription.assert_awaited_once_with("sub_1")
        assert uow.store.subscriptions[user.id].stripe_subscription_id == "sub_1"

    @pytest.mark.asyncio
    async def test_late_return_after_renewal_grants_nothing(
        self, service, stripe_service, uow, user, explorer_plan
    ):
        """The first-period key is the subscription, not its latest invoice."""
        await uow.subscriptions.upsert(SubscriptionUpsert(
            user_id=user.id, stripe_subscription_id="sub_1", status=SubscriptionStatus.ACTIVE,
        ))
        await uow.subscriptions.increment_credits(user.id, 100)
        for key, tx_type in (("purchase:sub_1", TransactionType.PURCHASE), ("renewal:in_2", TransactionType.RENEWAL)):
            await uow.transactions.add(CreditTransaction(
                user_id=user.id, credits_granted=50, transaction_type=tx_type, idempotency_key=key,
            ))
        session = paid_session(user.id, explorer_plan.stripe_price_id)
        session["subscription"]["latest_invoice"] = "in_2"
        stripe_service.retrieve_checkout_session.return_value = session

        await service.complete_checkout(user, "cs_1")

        assert uow.store.subscriptions[user.id].credits_remaining == 100
        assert [t.idempotency_key for t in uow.store.transactions] == ["purchase:sub_1", "renewal:in_2"]
