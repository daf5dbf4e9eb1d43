"""Stripe subscription billing: checkout, customer portal and webhooks."""
from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Dict, Optional

import stripe
from flask import current_app

from clubsite.errors import ConflictError, NotFoundError, PaymentNotConfigured, ValidationError
from clubsite.models import ClubProfile, Plan
from clubsite.services.docstore import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    AlreadyExists,
    DocumentStore,
    get_store,
)
from clubsite.services.identity import CLUB_PROFILES, ResolvedClub, ResolveMode, resolve_club

WEBHOOK_EVENTS = 'stripe_webhook_events'
CHECKOUT_SESSIONS = 'stripe_checkout_sessions'


class StripeEventType(Enum):
    """Webhook events that change a club's plan."""
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


ACTIVE_STATUSES = {'active', 'trialing'}
ENDED_STATUSES = {'canceled', 'unpaid', 'incomplete_expired'}


class WebhookResult(Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


def _now() -> float:
    return time.time()


def _paid_plan(value: Any) -> Plan:
    """Map checkout metadata to a paid plan; anything but officia is pro."""
    return Plan.OFFICIA if Plan.parse(value) is Plan.OFFICIA else Plan.PRO


class BillingService:
    """Service for Stripe checkout, portal sessions and webhook handling."""

    @staticmethod
    def _secret_key() -> str:
        key = current_app.config.get('STRIPE_SECRET_KEY')
        if not key:
            raise PaymentNotConfigured()
        return key

    @staticmethod
    def _price_id(plan: Plan) -> str:
        config_key = 'STRIPE_PRICE_ID_OFFICIA' if plan is Plan.OFFICIA else 'STRIPE_PRICE_ID'
        price_id = current_app.config.get(config_key)
        if not price_id:
            raise PaymentNotConfigured()
        return price_id

    @staticmethod
    def _site_url() -> str:
        return (current_app.config.get('PUBLIC_SITE_URL') or 'http://localhost:5000').rstrip('/')

    @staticmethod
    def create_checkout_session(
        club: ResolvedClub,
        requested_plan: Any = None,
        store: DocumentStore | None = None,
    ) -> str:
        """
        Create (or reuse) a subscription checkout session for a club.

        Repeated requests from the same owner inside one dedup window share a
        Stripe idempotency key and the stored session, so they return one URL.

        Args:
            club: Resolved club being upgraded
            requested_plan: ``pro`` or ``officia`` (defaults to pro)

        Returns:
            Checkout session URL
        """
        store = store or get_store()
        if requested_plan is not None and Plan.parse(requested_plan) is Plan.FREE:
            raise ValidationError("plan must be pro or officia", field='plan')
        plan = _paid_plan(requested_plan)
        profile = club.profile
        if profile.plan.rank >= plan.rank:
            raise ConflictError("This club is already subscribed to this plan")

        api_key = BillingService._secret_key()
        price_id = BillingService._price_id(plan)

        window = max(1, int(current_app.config.get('CHECKOUT_DEDUP_WINDOW_SECONDS', 600)))
        bucket = int(_now() // window)
        owner_uid = club.owner_uid

        record_ref = store.collection(CHECKOUT_SESSIONS).document(owner_uid)
        record = record_ref.get()
        if (
            record.exists
            and record.get('status') == 'open'
            and record.get('plan') == plan.value
            and record.get('bucket') == bucket
            and record.get('url')
        ):
            return record.get('url')

        site_url = BillingService._site_url()
        metadata = {'ownerUid': owner_uid, 'plan': plan.value, 'clubId': profile.club_id or ''}
        params: Dict[str, Any] = {
            'mode': 'subscription',
            'line_items': [{'price': price_id, 'quantity': 1}],
            'success_url': f"{site_url}/admin/plan?checkout=success",
            'cancel_url': f"{site_url}/admin/plan?checkout=cancel",
            'client_reference_id': owner_uid,
            'metadata': metadata,
            'subscription_data': {'metadata': metadata},
        }
        if profile.stripe_customer_id:
            params['customer'] = profile.stripe_customer_id

        session = stripe.checkout.Session.create(
            api_key=api_key,
            idempotency_key=f"checkout-{owner_uid}-{plan.value}-{bucket}",
            **params,
        )

        record_ref.set({
            'sessionId': session['id'],
            'url': session['url'],
            'plan': plan.value,
            'bucket': bucket,
            'status': 'open',
            'createdAt': SERVER_TIMESTAMP,
        })
        current_app.logger.info(f"Created checkout session {session['id']} for {owner_uid} ({plan.value})")
        return session['url']

    @staticmethod
    def create_portal_session(club: ResolvedClub) -> str:
        """Open a Stripe customer portal session; the club must have a customer."""
        api_key = BillingService._secret_key()
        customer_id = club.profile.stripe_customer_id
        if not customer_id:
            raise ValidationError("This club has no Stripe customer yet", field='stripeCustomerId')
        session = stripe.billing_portal.Session.create(
            api_key=api_key,
            customer=customer_id,
            return_url=f"{BillingService._site_url()}/admin/plan",
        )
        return session['url']

    @staticmethod
    def verify_event(payload: bytes, signature: str | None) -> dict:
        """
        Verify the ``Stripe-Signature`` header and decode the event.

        Raises:
            PaymentNotConfigured: no webhook secret configured
            ValidationError: bad signature or payload
        """
        secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')
        if not secret:
            raise PaymentNotConfigured()
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            body = payload.decode('utf-8')
        except UnicodeDecodeError:
            raise ValidationError("Invalid payload")
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, tolerance=300)
        except stripe.SignatureVerificationError as exc:
            current_app.logger.warning(f"Rejected Stripe webhook: {exc}")
            raise ValidationError("Invalid signature")
        try:
            event = json.loads(body)
        except ValueError:
            raise ValidationError("Invalid payload")
        if not isinstance(event, dict) or not isinstance(event.get('id'), str) or not event['id']:
            raise ValidationError("Invalid payload")
        return event

    @staticmethod
    def handle_event(event: dict, store: DocumentStore | None = None) -> WebhookResult:
        """
        Apply a verified webhook event at most once.

        The event id is claimed with an atomic create before any side effect.
        A failed handler releases the claim so Stripe's redelivery can retry.
        """
        store = store or get_store()
        event_id = event['id']
        event_type = event.get('type')
        claim = store.collection(WEBHOOK_EVENTS).document(event_id)
        try:
            claim.create({'type': event_type, 'receivedAt': SERVER_TIMESTAMP})
        except AlreadyExists:
            current_app.logger.info(f"Skipping duplicate Stripe event {event_id}")
            return WebhookResult.DUPLICATE

        try:
            handled = BillingService._dispatch(event_type, event.get('data', {}).get('object') or {}, store)
        except Exception:
            claim.delete()
            raise

        claim.update({'processed': handled, 'processedAt': SERVER_TIMESTAMP})
        return WebhookResult.PROCESSED if handled else WebhookResult.IGNORED

    @staticmethod
    def _dispatch(event_type: Optional[str], obj: dict, store: DocumentStore) -> bool:
        if event_type == StripeEventType.CHECKOUT_COMPLETED.value:
            return BillingService._checkout_completed(obj, store)
        if event_type == StripeEventType.SUBSCRIPTION_UPDATED.value:
            return BillingService._subscription_updated(obj, store)
        if event_type == StripeEventType.SUBSCRIPTION_DELETED.value:
            return BillingService._subscription_deleted(obj, store)
        return False

    @staticmethod
    def find_profile(obj: dict, store: DocumentStore) -> ClubProfile | None:
        """Locate the club for a Stripe object by customer id, then by metadata owner."""
        customer = obj.get('customer')
        if isinstance(customer, str) and customer:
            matches = store.collection(CLUB_PROFILES).where('stripeCustomerId', '==', customer).limit(1).get()
            if matches:
                return ClubProfile.from_snapshot(matches[0])
        metadata = obj.get('metadata') or {}
        owner_uid = metadata.get('ownerUid') or obj.get('client_reference_id')
        if isinstance(owner_uid, str) and owner_uid:
            resolved = resolve_club(owner_uid, mode=ResolveMode.ACCOUNT, store=store)
            if resolved is not None:
                return resolved.profile
        return None

    @staticmethod
    def _write_plan(store: DocumentStore, profile: ClubProfile, fields: dict) -> None:
        store.collection(CLUB_PROFILES).document(profile.doc_id).set(
            {**fields, 'planUpdatedAt': SERVER_TIMESTAMP}, merge=True
        )
        current_app.logger.info(f"Club {profile.doc_id} plan -> {fields.get('plan', profile.plan.value)}")

    @staticmethod
    def _checkout_completed(obj: dict, store: DocumentStore) -> bool:
        profile = BillingService.find_profile(obj, store)
        if profile is None:
            raise NotFoundError("No club matches this checkout session")
        metadata = obj.get('metadata') or {}
        fields: dict[str, Any] = {'plan': _paid_plan(metadata.get('plan')).value}
        if isinstance(obj.get('customer'), str):
            fields['stripeCustomerId'] = obj['customer']
        if isinstance(obj.get('subscription'), str):
            fields['stripeSubscriptionId'] = obj['subscription']
        BillingService._write_plan(store, profile, fields)
        store.collection(CHECKOUT_SESSIONS).document(profile.owner_uid).set(
            {'status': 'completed', 'completedAt': SERVER_TIMESTAMP}, merge=True
        )
        return True

    @staticmethod
    def _subscription_updated(obj: dict, store: DocumentStore) -> bool:
        profile = BillingService.find_profile(obj, store)
        if profile is None:
            current_app.logger.warning(f"No club for subscription {obj.get('id')}")
            return False
        status = obj.get('status')
        if status in ACTIVE_STATUSES:
            metadata = obj.get('metadata') or {}
            if metadata.get('plan'):
                plan = _paid_plan(metadata.get('plan'))
            else:
                plan = profile.plan if profile.plan is not Plan.FREE else Plan.PRO
            fields: dict[str, Any] = {'plan': plan.value}
            if isinstance(obj.get('id'), str):
                fields['stripeSubscriptionId'] = obj['id']
            BillingService._write_plan(store, profile, fields)
            return True
        if status in ENDED_STATUSES:
            BillingService._write_plan(store, profile, {'plan': Plan.FREE.value})
            return True
        return False

    @staticmethod
    def _subscription_deleted(obj: dict, store: DocumentStore) -> bool:
        profile = BillingService.find_profile(obj, store)
        if profile is None:
            current_app.logger.warning(f"No club for deleted subscription {obj.get('id')}")
            return False
        BillingService._write_plan(
            store, profile, {'plan': Plan.FREE.value, 'stripeSubscriptionId': DELETE_FIELD}
        )
        return True


__all__ = [
    'BillingService',
    'StripeEventType',
    'WebhookResult',
    'WEBHOOK_EVENTS',
    'CHECKOUT_SESSIONS',
]
