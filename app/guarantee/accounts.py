"""Merchant Stripe Connect onboarding and capability checks"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from app.config import Settings
from app.guarantee.eligibility import AccountStatus
from app.guarantee.errors import PaymentProviderError
from app.guarantee.payments import PaymentGateway
from app.guarantee.store import GuaranteeStore
from app.models.guarantee import GuaranteeConfig
from app.models.tenant import Tenant

logger = structlog.get_logger()


@dataclass
class ConnectResult:
    account_id: str
    already_connected: bool = False
    url: Optional[str] = None


@dataclass
class AccountDetails:
    connected: bool
    details_submitted: bool = False
    charges_enabled: bool = False
    payouts_enabled: bool = False
    business_profile: Optional[Dict[str, Any]] = None
    requirements: Optional[List[str]] = None


@dataclass
class EnableCheck:
    allowed: bool
    warning: Optional[str] = None


class PaymentAccountManager:
    """
    Owns the link between a merchant and its Stripe Express account.

    A stored account id that Stripe no longer recognizes is treated as stale: it is
    cleared and replaced with a fresh account rather than surfaced as an error.
    """

    def __init__(self, store: GuaranteeStore, gateway: PaymentGateway, settings: Settings):
        self.store = store
        self.gateway = gateway
        self.settings = settings

    def _onboarding_urls(self) -> Dict[str, str]:
        base = self.settings.frontend_url.rstrip("/")
        return {
            "refresh_url": f"{base}/settings/guarantee?stripe_refresh=true",
            "return_url": f"{base}/settings/guarantee?stripe_connected=true",
        }

    async def probe(self, config: Optional[GuaranteeConfig]) -> AccountStatus:
        """Capability flags of the merchant's account; never raises"""
        if config is None or not config.stripe_account_id:
            return AccountStatus.disconnected()
        try:
            account = await self.gateway.retrieve_account(config.stripe_account_id)
        except PaymentProviderError as e:
            return AccountStatus.failed(str(e))
        return AccountStatus(
            connected=True,
            details_submitted=account.details_submitted,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
        )

    async def connect(self, tenant: Tenant, contact_email: Optional[str]) -> ConnectResult:
        config = await self.store.get_config(tenant.id)

        if config is not None and config.stripe_account_id:
            account_id = config.stripe_account_id
            try:
                account = await self.gateway.retrieve_account(account_id)
            except PaymentProviderError as e:
                logger.info(
                    "Stored Stripe account invalid, creating a new one",
                    tenant_id=str(tenant.id),
                    account_id=account_id,
                    error=str(e),
                )
                config = await self.store.upsert_config(tenant.id, stripe_account_id=None)
            else:
                if account.charges_enabled and account.details_submitted:
                    return ConnectResult(account_id=account_id, already_connected=True)
                logger.info("Stripe account not fully onboarded, issuing new link", account_id=account_id)
                url = await self.gateway.create_onboarding_link(account_id, **self._onboarding_urls())
                return ConnectResult(account_id=account_id, url=url)

        account = await self.gateway.create_account(
            email=contact_email,
            metadata={"tenant_id": str(tenant.id), "platform": "tablehold"},
        )
        await self.store.upsert_config(tenant.id, stripe_account_id=account.id)
        url = await self.gateway.create_onboarding_link(account.id, **self._onboarding_urls())

        logger.info("Generated onboarding link", tenant_id=str(tenant.id), account_id=account.id)
        return ConnectResult(account_id=account.id, url=url)

    async def status(self, config: Optional[GuaranteeConfig]) -> AccountDetails:
        if config is None or not config.stripe_account_id:
            return AccountDetails(connected=False)
        account = await self.gateway.retrieve_account(config.stripe_account_id)
        return AccountDetails(
            connected=True,
            details_submitted=account.details_submitted,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
            business_profile=account.business_profile,
            requirements=account.requirements,
        )

    async def disconnect(self, tenant_id) -> GuaranteeConfig:
        """Forget the account; the guarantee cannot stay enabled without one"""
        config = await self.store.upsert_config(tenant_id, stripe_account_id=None, enabled=False)
        logger.info("Stripe account disconnected", tenant_id=str(tenant_id))
        return config

    async def check_can_enable(self, config: Optional[GuaranteeConfig]) -> EnableCheck:
        if config is None or not config.stripe_account_id:
            return EnableCheck(
                allowed=False,
                warning="Settings saved. Connect Stripe to enable the card guarantee.",
            )
        account = await self.probe(config)
        if not account.fully_onboarded:
            return EnableCheck(
                allowed=False,
                warning="Settings saved. Complete your Stripe onboarding to enable the card guarantee.",
            )
        return EnableCheck(allowed=True)
