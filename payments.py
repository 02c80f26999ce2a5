"""
Payment collaborator.

Creates Stripe payment intents for the checkout page. Orders are placed
before payment; when a payment fails the client cancels the order itself.
"""

import logging

import stripe

import settings
from errors import UserInputError, guarded

logger = logging.getLogger(__name__)


@guarded("Failed to create payment intent")
def create_payment_intent(amount: float, currency: str = settings.PAYMENT_CURRENCY) -> str:
    """
    Create a payment intent for ``amount`` dollars.

    Returns:
        The intent's client secret, handed to the browser to confirm the card
    """
    if not amount or not currency:
        raise UserInputError("Missing required fields")
    if amount <= 0:
        raise UserInputError("Invalid amount")

    cents = int(round(amount * 100))
    intent = stripe.PaymentIntent.create(
        amount=cents,
        currency=currency.lower(),
        api_key=settings.STRIPE_SECRET_KEY,
    )
    logger.info(f"Created payment intent {intent.id} for {cents} {currency.lower()}")
    return intent.client_secret
