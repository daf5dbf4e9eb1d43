"""Stripe checkout dedup, portal sessions and webhook processing."""

import json
import time

import pytest
import stripe

from clubsite.services import billing
from clubsite.services.billing import WEBHOOK_EVENTS, BillingService, WebhookResult
from clubsite.services.clubs import register_club
from clubsite.services.docstore import get_store
from conftest import seed_club, sign_stripe_payload


@pytest.fixture
def stripe_calls(monkeypatch):
    """Record checkout and portal calls instead of reaching Stripe."""
    calls = {'checkout': [], 'portal': []}

    def fake_checkout(**params):
        calls['checkout'].append(params)
        number = len(calls['checkout'])
        return {'id': f'cs_test_{number}', 'url': f'https://checkout.stripe.test/cs_test_{number}'}

    def fake_portal(**params):
        calls['portal'].append(params)
        return {'id': 'bps_test', 'url': 'https://billing.stripe.test/session'}

    monkeypatch.setattr(stripe.checkout.Session, 'create', fake_checkout)
    monkeypatch.setattr(stripe.billing_portal.Session, 'create', fake_portal)
    monkeypatch.setattr(billing, '_now', lambda: 1_700_000_000.0)
    return calls


def profile(app, doc_id='owner-1'):
    with app.app_context():
        return get_store().document(f'club_profiles/{doc_id}').get().to_dict()


# ==== CHECKOUT ====

class TestCheckout:

    def test_repeated_requests_share_one_session(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        headers = auth_headers('owner-1')
        first = client.post('/api/stripe/create-checkout-session', json={'plan': 'pro'}, headers=headers)
        second = client.post('/api/stripe/create-checkout-session', json={'plan': 'pro'}, headers=headers)

        assert first.status_code == 200
        assert first.get_json()['url'] == second.get_json()['url']
        assert len(stripe_calls['checkout']) == 1

        params = stripe_calls['checkout'][0]
        assert params['idempotency_key'] == 'checkout-owner-1-pro-2833333'
        assert params['client_reference_id'] == 'owner-1'
        assert params['line_items'] == [{'price': 'price_pro', 'quantity': 1}]
        assert params['metadata'] == {'ownerUid': 'owner-1', 'plan': 'pro', 'clubId': 'fc-demo'}
        assert 'customer' not in params

    def test_new_window_creates_new_session(self, app, client, auth_headers, stripe_calls, monkeypatch):
        seed_club(app)
        headers = auth_headers('owner-1')
        client.post('/api/stripe/create-checkout-session', json={}, headers=headers)
        monkeypatch.setattr(billing, '_now', lambda: 1_700_000_000.0 + 600)
        client.post('/api/stripe/create-checkout-session', json={}, headers=headers)

        keys = [call['idempotency_key'] for call in stripe_calls['checkout']]
        assert len(set(keys)) == 2

    def test_other_plan_is_not_deduplicated(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        headers = auth_headers('owner-1')
        pro = client.post('/api/stripe/create-checkout-session', json={'plan': 'pro'}, headers=headers)
        officia = client.post('/api/stripe/create-checkout-session', json={'plan': 'officia'}, headers=headers)

        assert pro.get_json()['url'] != officia.get_json()['url']
        assert stripe_calls['checkout'][1]['line_items'][0]['price'] == 'price_officia'

    def test_existing_customer_is_reused(self, app, client, auth_headers, stripe_calls):
        seed_club(app, stripeCustomerId='cus_123')
        client.post('/api/stripe/create-checkout-session', json={}, headers=auth_headers('owner-1'))
        assert stripe_calls['checkout'][0]['customer'] == 'cus_123'

    def test_free_plan_rejected(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        response = client.post('/api/stripe/create-checkout-session', json={'plan': 'free'}, headers=auth_headers('owner-1'))
        assert response.status_code == 400
        assert stripe_calls['checkout'] == []

    def test_already_subscribed(self, app, client, auth_headers, stripe_calls):
        seed_club(app, plan='pro')
        headers = auth_headers('owner-1')
        response = client.post('/api/stripe/create-checkout-session', json={'plan': 'pro'}, headers=headers)
        assert response.status_code == 409
        upgrade = client.post('/api/stripe/create-checkout-session', json={'plan': 'officia'}, headers=headers)
        assert upgrade.status_code == 200

    def test_not_configured(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        app.config['STRIPE_SECRET_KEY'] = None
        response = client.post('/api/stripe/create-checkout-session', json={}, headers=auth_headers('owner-1'))
        assert response.status_code == 500
        assert response.get_json() == {'message': 'Stripe is not correctly configured on the server.'}

    def test_requires_club_admin(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        assert client.post('/api/stripe/create-checkout-session', json={}).status_code == 401
        response = client.post('/api/stripe/create-checkout-session', json={}, headers=auth_headers('stranger'))
        assert response.status_code == 404


class TestPortal:

    def test_requires_customer(self, app, client, auth_headers, stripe_calls):
        seed_club(app)
        response = client.post('/api/stripe/create-portal-session', headers=auth_headers('owner-1'))
        assert response.status_code == 400
        assert stripe_calls['portal'] == []

    def test_opens_portal(self, app, client, auth_headers, stripe_calls):
        seed_club(app, stripeCustomerId='cus_123')
        response = client.post('/api/stripe/create-portal-session', headers=auth_headers('owner-1'))
        assert response.get_json() == {'url': 'https://billing.stripe.test/session'}
        assert stripe_calls['portal'][0]['customer'] == 'cus_123'
        assert stripe_calls['portal'][0]['return_url'] == 'https://clubs.example.com/admin/plan'


# ==== WEBHOOKS ====

def event_payload(event_id, event_type, obj):
    return json.dumps({'id': event_id, 'object': 'event', 'type': event_type, 'data': {'object': obj}})


def deliver(client, payload, signature=None):
    if signature is None:
        signature = sign_stripe_payload(payload)
    return client.post(
        '/api/stripe/webhook',
        data=payload,
        headers={'Stripe-Signature': signature, 'Content-Type': 'application/json'},
    )


def checkout_completed(event_id='evt_1', owner_uid='owner-1', plan='pro'):
    return event_payload(event_id, 'checkout.session.completed', {
        'id': 'cs_test_1',
        'object': 'checkout.session',
        'client_reference_id': owner_uid,
        'customer': 'cus_123',
        'subscription': 'sub_123',
        'metadata': {'ownerUid': owner_uid, 'plan': plan},
    })


class TestWebhook:

    def test_checkout_completed_upgrades_plan(self, app, client):
        seed_club(app)
        response = deliver(client, checkout_completed())
        assert response.status_code == 200
        assert response.get_json() == {'received': True, 'result': 'processed'}

        data = profile(app)
        assert data['plan'] == 'pro'
        assert data['stripeCustomerId'] == 'cus_123'
        assert data['stripeSubscriptionId'] == 'sub_123'

    def test_duplicate_delivery_applied_once(self, app, client):
        seed_club(app)
        payload = checkout_completed()
        deliver(client, payload)
        with app.app_context():
            get_store().document('club_profiles/owner-1').update({'plan': 'free'})

        response = deliver(client, payload)
        assert response.get_json()['result'] == 'duplicate'
        assert profile(app)['plan'] == 'free'

    def test_bad_signature(self, app, client):
        seed_club(app)
        payload = checkout_completed()
        response = deliver(client, payload, signature=sign_stripe_payload(payload, secret='whsec_wrong'))
        assert response.status_code == 400
        assert response.get_json() == {'message': 'Invalid signature'}
        assert profile(app)['plan'] == 'free'

    def test_stale_signature(self, app, client):
        seed_club(app)
        payload = checkout_completed()
        stale = sign_stripe_payload(payload, timestamp=int(time.time()) - 3600)
        assert deliver(client, payload, signature=stale).status_code == 400

    def test_missing_signature(self, client):
        response = client.post('/api/stripe/webhook', data=checkout_completed())
        assert response.status_code == 400

    def test_failed_handler_releases_claim(self, app, client):
        payload = checkout_completed(owner_uid='owner-1')
        response = deliver(client, payload)
        assert response.status_code == 404
        with app.app_context():
            assert not get_store().document(f'{WEBHOOK_EVENTS}/evt_1').get().exists

        seed_club(app)
        retry = deliver(client, payload)
        assert retry.get_json()['result'] == 'processed'
        assert profile(app)['plan'] == 'pro'

    def test_unrelated_event_ignored(self, client):
        payload = event_payload('evt_9', 'invoice.paid', {'id': 'in_1'})
        assert deliver(client, payload).get_json()['result'] == 'ignored'

    def test_subscription_lifecycle(self, app, client):
        seed_club(app, stripeCustomerId='cus_123', plan='pro', stripeSubscriptionId='sub_123')

        upgraded = event_payload('evt_2', 'customer.subscription.updated', {
            'id': 'sub_123', 'customer': 'cus_123', 'status': 'active', 'metadata': {'plan': 'officia'},
        })
        deliver(client, upgraded)
        assert profile(app)['plan'] == 'officia'

        past_due = event_payload('evt_3', 'customer.subscription.updated', {
            'id': 'sub_123', 'customer': 'cus_123', 'status': 'past_due',
        })
        assert deliver(client, past_due).get_json()['result'] == 'ignored'
        assert profile(app)['plan'] == 'officia'

        canceled = event_payload('evt_4', 'customer.subscription.updated', {
            'id': 'sub_123', 'customer': 'cus_123', 'status': 'canceled',
        })
        deliver(client, canceled)
        assert profile(app)['plan'] == 'free'

    def test_subscription_deleted(self, app, client):
        seed_club(app, stripeCustomerId='cus_123', plan='pro', stripeSubscriptionId='sub_123')
        payload = event_payload('evt_5', 'customer.subscription.deleted', {'id': 'sub_123', 'customer': 'cus_123'})
        deliver(client, payload)

        data = profile(app)
        assert data['plan'] == 'free'
        assert 'stripeSubscriptionId' not in data
        assert data['stripeCustomerId'] == 'cus_123'

    def test_undecodable_body(self, client):
        payload = b'\xff\xfe{}'
        response = client.post(
            '/api/stripe/webhook',
            data=payload,
            headers={'Stripe-Signature': 't=1,v1=abc', 'Content-Type': 'application/json'},
        )
        assert response.status_code == 400
        assert response.get_json() == {'message': 'Invalid payload'}

    def test_signed_body_that_is_not_json(self, client):
        payload = 'not json at all'
        response = deliver(client, payload)
        assert response.status_code == 400
        assert response.get_json() == {'message': 'Invalid payload'}


# ==== CONCURRENT DELIVERY ====

class TestConcurrentDelivery:

    def test_delivery_arriving_mid_processing_is_a_duplicate(self, ctx, store, monkeypatch):
        register_club('owner-1', 'fc-demo', store=store)
        event = json.loads(checkout_completed())
        original = BillingService._checkout_completed
        overlapping = []

        def slow_handler(obj, store):
            # a second worker receives the same event before the first finishes
            overlapping.append(BillingService.handle_event(event, store=store))
            return original(obj, store)

        monkeypatch.setattr(BillingService, '_checkout_completed', staticmethod(slow_handler))
        result = BillingService.handle_event(event, store=store)

        assert result is WebhookResult.PROCESSED
        assert overlapping == [WebhookResult.DUPLICATE]
        assert store.document('club_profiles/owner-1').get().get('plan') == 'pro'
        assert store.document(f'{WEBHOOK_EVENTS}/evt_1').get().get('processed') is True

    def test_claim_held_by_another_worker(self, ctx, store):
        register_club('owner-1', 'fc-demo', store=store)
        store.collection(WEBHOOK_EVENTS).document('evt_1').create({'type': 'checkout.session.completed'})

        result = BillingService.handle_event(json.loads(checkout_completed()), store=store)

        assert result is WebhookResult.DUPLICATE
        assert store.document('club_profiles/owner-1').get().get('plan') == 'free'
