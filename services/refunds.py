import logging

import stripe
from flask import current_app

from services.errors import GatewayError

logger = logging.getLogger(__name__)


class Refundable:
    """
    Refund capability of one payment gateway.

    refund(payment, context) returns:
        {'provider': str, 'status': 'ok'|'error', 'refund_id': str|None, 'error': str|None}

    Providers never write to the database. The caller marks the payment
    cancelled once a provider reports 'ok'.
    """
    name = 'UNKNOWN'

    def refund(self, payment, context=None):
        try:
            refund_id = self._refund(payment, context or {})
        except GatewayError as e:
            return {'provider': self.name, 'status': 'error', 'refund_id': None, 'error': str(e)}
        return {'provider': self.name, 'status': 'ok', 'refund_id': refund_id, 'error': None}

    def _refund(self, payment, context):
        raise NotImplementedError


class StripeRefundProvider(Refundable):
    name = 'STRIPE'

    def _refund(self, payment, context):
        secret = context.get('stripe_secret_key') or current_app.config.get('STRIPE_SECRET_KEY')
        if not secret:
            raise GatewayError(self.name, 'STRIPE_SECRET_KEY missing')
        if not payment.gateway_reference:
            raise GatewayError(self.name, f'payment {payment.id} has no payment intent id')

        try:
            refund = stripe.Refund.create(
                payment_intent=payment.gateway_reference,
                api_key=secret,
            )
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for payment %s: %s", payment.id, e)
            raise GatewayError(self.name, getattr(e, 'user_message', None) or str(e))
        return refund.id


class LocalCancelProvider(Refundable):
    """
    Marks the payment refunded without calling the gateway.
    PayU, P24 and Tpay have no refund integration yet, so a refund recorded
    through them has NOT moved any money and must be settled by hand.
    """

    def __init__(self, name):
        self.name = name

    def _refund(self, payment, context):
        logger.warning(
            "No refund API for gateway %s; payment %s marked cancelled locally, settle manually",
            self.name, payment.id,
        )
        return f'LOCAL:{self.name}:{payment.id}'


# TODO: replace PAYU/P24/TPAY with real refund clients once merchant accounts exist
REFUND_PROVIDERS = {
    'STRIPE': StripeRefundProvider(),
    'PAYU': LocalCancelProvider('PAYU'),
    'P24': LocalCancelProvider('P24'),
    'TPAY': LocalCancelProvider('TPAY'),
}

# Gateways whose refunds go through a real external call
LIVE_REFUND_GATEWAYS = {'STRIPE'}


def get_refund_provider(gateway):
    provider = REFUND_PROVIDERS.get((gateway or '').upper())
    if provider is None:
        logger.warning("Unconfigured gateway %r, falling back to local cancel", gateway)
        return LocalCancelProvider(gateway or 'UNKNOWN')
    return provider
