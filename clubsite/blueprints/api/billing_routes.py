"""Stripe checkout, customer portal and webhook endpoints."""

from __future__ import annotations

from flask import g, jsonify, request

from clubsite.auth import club_admin_required
from clubsite.services.billing import BillingService

from .routes import api_bp


@api_bp.route('/stripe/create-checkout-session', methods=['POST'])
@club_admin_required
def create_checkout_session():
    body = request.get_json(silent=True) or {}
    url = BillingService.create_checkout_session(g.club, body.get('plan'))
    return jsonify({'url': url})


@api_bp.route('/stripe/create-portal-session', methods=['POST'])
@club_admin_required
def create_portal_session():
    return jsonify({'url': BillingService.create_portal_session(g.club)})


@api_bp.route('/stripe/webhook', methods=['POST'])
def stripe_webhook():
    event = BillingService.verify_event(request.get_data(), request.headers.get('Stripe-Signature'))
    result = BillingService.handle_event(event)
    return jsonify({'received': True, 'result': result.value})
