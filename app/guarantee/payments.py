"""
Payment processor gateway.

The guarantee flow only needs a handful of Stripe Connect operations: manage the
merchant's Express account, open setup-mode checkouts on it, read them back, and
charge a stored card off-session. Everything else in the app talks to this
interface so tests can substitute a fake processor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
import stripe
import structlog

from app.guarantee.errors import PaymentProviderError

logger = structlog.get_logger()


@dataclass
class AccountInfo:
    id: str
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    business_profile: Optional[Dict[str, Any]] = None
    requirements: List[str] = field(default_factory=list)


@dataclass
class CheckoutInfo:
    id: str
    status: Optional[str] = None  # open, complete, expired
    url: Optional[str] = None
    customer_id: Optional[str] = None
    setup_intent_id: Optional[str] = None
    payment_method_id: Optional[str] = None


@dataclass
class ChargeInfo:
    id: str
    status: str
    amount: int


class PaymentGateway(ABC):
    """Operations the guarantee flow performs against the processor"""

    @abstractmethod
    async def retrieve_account(self, account_id: str) -> AccountInfo:
        pass

    @abstractmethod
    async def create_account(self, email: Optional[str], metadata: Dict[str, str]) -> AccountInfo:
        pass

    @abstractmethod
    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        pass

    @abstractmethod
    async def create_setup_checkout(
        self,
        account_id: str,
        *,
        customer_email: Optional[str],
        customer_name: Optional[str],
        customer_id: Optional[str],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutInfo:
        pass

    @abstractmethod
    async def retrieve_checkout(self, account_id: str, checkout_session_id: str) -> CheckoutInfo:
        pass

    @abstractmethod
    async def retrieve_setup_payment_method(self, account_id: str, setup_intent_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def charge_off_session(
        self,
        account_id: str,
        *,
        amount: int,
        currency: str,
        customer_id: Optional[str],
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> ChargeInfo:
        pass


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may be an id string or an expanded object"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _requirements(account: Any) -> List[str]:
    items: List[str] = []
    req_obj = getattr(account, "requirements", None)
    if not req_obj:
        return items
    for field_name in ("currently_due", "past_due", "pending_verification"):
        for item in getattr(req_obj, field_name, None) or []:
            if isinstance(item, str):
                items.append(item)
    return items


class StripeGateway(PaymentGateway):
    """Stripe Connect implementation; blocking SDK calls run in the threadpool"""

    def __init__(self, secret_key: str, country: str = "FR"):
        stripe.api_key = secret_key
        self.country = country

    async def _call(self, operation: str, func, *args, **kwargs):
        try:
            return await run_in_threadpool(func, *args, **kwargs)
        except stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            logger.warning("Stripe call failed", operation=operation, error=message, code=getattr(e, "code", None))
            raise PaymentProviderError(message, code=getattr(e, "code", None)) from e

    def _account_info(self, account: Any) -> AccountInfo:
        business_profile = getattr(account, "business_profile", None)
        if business_profile is not None and hasattr(business_profile, "to_dict"):
            business_profile = business_profile.to_dict()
        return AccountInfo(
            id=account.id,
            details_submitted=bool(getattr(account, "details_submitted", False)),
            charges_enabled=bool(getattr(account, "charges_enabled", False)),
            payouts_enabled=bool(getattr(account, "payouts_enabled", False)),
            business_profile=business_profile,
            requirements=_requirements(account),
        )

    async def retrieve_account(self, account_id: str) -> AccountInfo:
        account = await self._call("account.retrieve", stripe.Account.retrieve, account_id)
        return self._account_info(account)

    async def create_account(self, email: Optional[str], metadata: Dict[str, str]) -> AccountInfo:
        account = await self._call(
            "account.create",
            stripe.Account.create,
            type="express",
            country=self.country,
            email=email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            business_type="individual",
            metadata=metadata,
        )
        logger.info("Created Stripe Express account", account_id=account.id)
        return self._account_info(account)

    async def create_onboarding_link(self, account_id: str, refresh_url: str, return_url: str) -> str:
        link = await self._call(
            "account_link.create",
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
        return str(link.url)

    async def create_setup_checkout(
        self,
        account_id: str,
        *,
        customer_email: Optional[str],
        customer_name: Optional[str],
        customer_id: Optional[str],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutInfo:
        # Off-session charges need the card attached to a customer on the connected account
        if not customer_id:
            customer = await self._call(
                "customer.create",
                stripe.Customer.create,
                email=customer_email,
                name=customer_name,
                metadata=metadata,
                stripe_account=account_id,
            )
            customer_id = customer.id

        session = await self._call(
            "checkout.create",
            stripe.checkout.Session.create,
            mode="setup",
            payment_method_types=["card"],
            customer=customer_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            setup_intent_data={"metadata": metadata},
            stripe_account=account_id,
        )
        return CheckoutInfo(
            id=session.id,
            status=getattr(session, "status", None),
            url=getattr(session, "url", None),
            customer_id=customer_id,
        )

    async def retrieve_checkout(self, account_id: str, checkout_session_id: str) -> CheckoutInfo:
        session = await self._call(
            "checkout.retrieve",
            stripe.checkout.Session.retrieve,
            checkout_session_id,
            expand=["setup_intent", "setup_intent.payment_method"],
            stripe_account=account_id,
        )
        setup_intent = getattr(session, "setup_intent", None)
        payment_method = getattr(setup_intent, "payment_method", None) if setup_intent is not None else None
        return CheckoutInfo(
            id=session.id,
            status=getattr(session, "status", None),
            url=getattr(session, "url", None),
            customer_id=_object_id(getattr(session, "customer", None)),
            setup_intent_id=_object_id(setup_intent),
            payment_method_id=_object_id(payment_method),
        )

    async def retrieve_setup_payment_method(self, account_id: str, setup_intent_id: str) -> Optional[str]:
        setup_intent = await self._call(
            "setup_intent.retrieve",
            stripe.SetupIntent.retrieve,
            setup_intent_id,
            stripe_account=account_id,
        )
        return _object_id(getattr(setup_intent, "payment_method", None))

    async def charge_off_session(
        self,
        account_id: str,
        *,
        amount: int,
        currency: str,
        customer_id: Optional[str],
        payment_method_id: str,
        description: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> ChargeInfo:
        intent = await self._call(
            "payment_intent.create",
            stripe.PaymentIntent.create,
            amount=amount,
            currency=currency,
            customer=customer_id,
            payment_method=payment_method_id,
            confirm=True,
            off_session=True,
            description=description,
            metadata=metadata,
            stripe_account=account_id,
            idempotency_key=idempotency_key,
        )
        return ChargeInfo(id=intent.id, status=intent.status, amount=intent.amount)
