"""Payment collaborator interface.

Settlement happens in an external gateway. The booking backend only passes an
amount and a reference and records the resulting intent id.
"""

import logging
import uuid
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

from telehealth.core import config
from telehealth.core.errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger(__name__)

INTENT_REQUIRES_CONFIRMATION = 'requires_confirmation'
INTENT_SUCCEEDED = 'succeeded'
INTENT_REFUNDED = 'refunded'


@dataclass
class PaymentIntent:
    id: str
    amount: float
    currency: str
    reference: str
    status: str = INTENT_REQUIRES_CONFIRMATION

    @property
    def amount_minor_units(self) -> int:
        return int(round(self.amount * 100))


class PaymentProcessor(Protocol):
    def create_intent(self, amount: float, reference: str) -> PaymentIntent: ...

    def confirm(self, intent_id: str) -> PaymentIntent: ...

    def refund(self, intent_id: str) -> PaymentIntent: ...


class OfflinePaymentProcessor:
    """Keeps intents in memory and settles them immediately on confirm."""

    def __init__(self, currency: str | None = None):
        self.currency = currency or config.PAYMENT_CURRENCY
        self._intents: dict[str, PaymentIntent] = {}
        self._lock = Lock()

    def create_intent(self, amount: float, reference: str) -> PaymentIntent:
        if amount < 0:
            raise InvalidArgumentError('Payment amount cannot be negative.')

        intent = PaymentIntent(
            id=f'pi_{uuid.uuid4().hex}',
            amount=amount,
            currency=self.currency,
            reference=reference,
        )
        with self._lock:
            self._intents[intent.id] = intent
        logger.info('Created payment intent %s for %s (%s %.2f)', intent.id, reference, intent.currency, amount)
        return intent

    def _get(self, intent_id: str) -> PaymentIntent:
        intent = self._intents.get(intent_id)
        if intent is None:
            raise NotFoundError(f'Payment intent {intent_id} not found.')
        return intent

    def confirm(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            intent = self._get(intent_id)
            if intent.status == INTENT_REQUIRES_CONFIRMATION:
                intent.status = INTENT_SUCCEEDED
        return intent

    def refund(self, intent_id: str) -> PaymentIntent:
        with self._lock:
            intent = self._get(intent_id)
            if intent.status != INTENT_SUCCEEDED:
                raise InvalidArgumentError('Only settled payments can be refunded.')
            intent.status = INTENT_REFUNDED
        logger.info('Refunded payment intent %s', intent_id)
        return intent


_default_processor = OfflinePaymentProcessor()


def get_payment_processor() -> PaymentProcessor:
    return _default_processor
