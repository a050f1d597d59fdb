"""In-memory stand-ins for the payment processor and the delivery channels"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from app.guarantee.channels import SendResult
from app.guarantee.errors import PaymentProviderError
from app.guarantee.lifecycle import SessionStatus
from app.guarantee.payments import AccountInfo, ChargeInfo, CheckoutInfo, PaymentGateway
from app.models.guarantee import GuaranteeSession

MASTER_KEY = "workflow-master-key-for-tests"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeGateway(PaymentGateway):
    """Records every processor call and keeps accounts/checkouts in dicts"""

    def __init__(self):
        self.accounts: Dict[str, AccountInfo] = {}
        self.checkouts: Dict[str, CheckoutInfo] = {}
        self.setup_payment_methods: Dict[str, str] = {}
        self.charges: List[dict] = []
        self.onboarding_links: List[str] = []
        self.charge_status = "succeeded"
        self.charge_error: Optional[str] = None
        # Awaited while the charge is "on the wire", to interleave a second request
        self.during_charge: Optional[Callable[[], Awaitable[Any]]] = None
        self._counter = 0

    def _next(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_test_{self._counter}"

    def add_account(self, account_id: str = "acct_test", charges_enabled: bool = True, details_submitted: bool = True):
        account = AccountInfo(
            id=account_id,
            details_submitted=details_submitted,
            charges_enabled=charges_enabled,
            payouts_enabled=charges_enabled,
            business_profile={"name": "Chez Test"},
            requirements=[] if details_submitted else ["external_account"],
        )
        self.accounts[account_id] = account
        return account

    def complete_checkout(self, checkout_session_id: str, payment_method_id: str = "pm_card_visa") -> CheckoutInfo:
        checkout = self.checkouts[checkout_session_id]
        checkout.status = "complete"
        checkout.setup_intent_id = self._next("seti")
        checkout.payment_method_id = payment_method_id
        self.setup_payment_methods[checkout.setup_intent_id] = payment_method_id
        return checkout

    async def retrieve_account(self, account_id):
        if account_id not in self.accounts:
            raise PaymentProviderError(f"No such account: '{account_id}'", code="resource_missing")
        return self.accounts[account_id]

    async def create_account(self, email, metadata):
        return self.add_account(self._next("acct"), charges_enabled=False, details_submitted=False)

    async def create_onboarding_link(self, account_id, refresh_url, return_url):
        url = f"https://connect.stripe.test/setup/{account_id}"
        self.onboarding_links.append(url)
        return url

    async def create_setup_checkout(
        self,
        account_id,
        *,
        customer_email,
        customer_name,
        customer_id,
        success_url,
        cancel_url,
        metadata,
    ):
        checkout_id = self._next("cs")
        checkout = CheckoutInfo(
            id=checkout_id,
            status="open",
            url=f"https://checkout.stripe.test/{checkout_id}",
            customer_id=customer_id or self._next("cus"),
        )
        self.checkouts[checkout_id] = checkout
        return checkout

    async def retrieve_checkout(self, account_id, checkout_session_id):
        if checkout_session_id not in self.checkouts:
            raise PaymentProviderError(f"No such checkout.session: '{checkout_session_id}'", code="resource_missing")
        return self.checkouts[checkout_session_id]

    async def retrieve_setup_payment_method(self, account_id, setup_intent_id):
        return self.setup_payment_methods.get(setup_intent_id)

    async def charge_off_session(
        self,
        account_id,
        *,
        amount,
        currency,
        customer_id,
        payment_method_id,
        description,
        metadata,
        idempotency_key,
    ):
        if self.during_charge is not None:
            hook, self.during_charge = self.during_charge, None
            await hook()
        self.charges.append({
            "account_id": account_id,
            "amount": amount,
            "currency": currency,
            "customer_id": customer_id,
            "payment_method_id": payment_method_id,
            "idempotency_key": idempotency_key,
        })
        if self.charge_error:
            raise PaymentProviderError(self.charge_error, code="card_declined")
        return ChargeInfo(id=self._next("pi"), status=self.charge_status, amount=amount)


class FakeEmailChannel:
    """Succeeds by default; set `error` to report a failed send or `raises` to blow up"""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent: List[dict] = []
        self.error: Optional[str] = None
        self.raises: Optional[Exception] = None

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, to_email, subject, html_body, text_body=None, from_name=None, reply_to=None):
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return SendResult(success=False, error=self.error)
        self.sent.append({"to": to_email, "subject": subject, "from_name": from_name, "reply_to": reply_to})
        return SendResult(success=True, message_id=f"email_{len(self.sent)}")


class FakeSmsChannel:
    def __init__(self, configured: bool = True):
        self.configured = configured
        self.sent: List[dict] = []
        self.error: Optional[str] = None
        self.raises: Optional[Exception] = None

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, to, body):
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return SendResult(success=False, error=self.error)
        self.sent.append({"to": to, "body": body})
        return SendResult(success=True, message_id=f"SM{len(self.sent)}")


async def add_session(db, tenant, **fields) -> GuaranteeSession:
    """Insert a guarantee session for `tenant`; defaults describe a validated table of six"""
    values = dict(
        id=uuid4(),
        tenant_id=tenant.id,
        reservation_id=f"resa-{uuid4().hex[:8]}",
        customer_name="Marie Dupont",
        customer_email="marie@example.com",
        customer_phone="0612345678",
        nb_persons=6,
        reservation_date=datetime.utcnow().replace(hour=12, minute=0, second=0, microsecond=0) + timedelta(days=2),
        reservation_time="20:00",
        timezone="Europe/Paris",
        status=SessionStatus.VALIDATED,
        penalty_amount=30,
        reminder_count=0,
        checkout_session_id=f"cs_seed_{uuid4().hex[:8]}",
        setup_intent_id="seti_seed",
        payment_method_id="pm_card_visa",
        stripe_customer_id="cus_seed",
        validated_at=datetime.utcnow(),
        created_at=datetime.utcnow(),
    )
    values.update(fields)
    session = GuaranteeSession(**values)
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session


def create_session_payload(**overrides) -> dict:
    """Body of a create-session call as sent by the booking automation"""
    payload = {
        "reservation_id": "resa-001",
        "customer_name": "Marie Dupont",
        "customer_email": "marie@example.com",
        "customer_phone": "06 12 34 56 78",
        "nb_persons": 6,
        "reservation_date": "2025-12-20",
        "reservation_time": "20:00",
        "timezone": "Europe/Paris",
    }
    payload.update(overrides)
    return payload
