"""Order payment — commands and handler.

RecordPaymentCapture and RecordPaymentFailure return whether an event was
written. False means the order had already left pending and nothing changed.
A capture for a failed order is recorded against it without a status change.
"""

from protean import handle
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class AttachPaymentIntent:
    order_id = Identifier(required=True)
    remote_order_id = String(required=True, max_length=255)


@ordering.command(part_of="Order")
class RecordPaymentCapture:
    order_id = Identifier(required=True)
    remote_payment_id = String(required=True, max_length=255)
    amount = Float(required=True)
    currency = String(max_length=3)
    method = String(max_length=50)
    source = String(max_length=20)


@ordering.command(part_of="Order")
class RecordPaymentFailure:
    order_id = Identifier(required=True)
    remote_payment_id = String(max_length=255)
    reason = String(required=True, max_length=500)


@ordering.command_handler(part_of=Order)
class RecordPaymentHandler:
    @handle(AttachPaymentIntent)
    def attach_payment_intent(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.attach_payment_intent(command.remote_order_id)
        repo.add(order)

    @handle(RecordPaymentCapture)
    def record_payment_capture(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        capture = order.record_capture_after_failure if order.is_failed else order.capture_payment
        committed = capture(
            remote_payment_id=command.remote_payment_id,
            amount=command.amount,
            currency=command.currency,
            method=command.method,
            source=command.source,
        )
        if committed:
            repo.add(order)
        return committed

    @handle(RecordPaymentFailure)
    def record_payment_failure(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        committed = order.fail_payment(
            remote_payment_id=command.remote_payment_id,
            reason=command.reason,
        )
        if committed:
            repo.add(order)
        return committed
