"""Business-rule failures raised by the data-access layer.

All of them are ``ValueError`` subclasses: the HTTP layer turns a ``ValueError``
into a 400 response, and the action layer returns ``str(exc)`` to the caller.
"""


class StoreError(ValueError):
    pass


class NotFoundError(StoreError):
    pass


class InsufficientStockError(StoreError):
    pass


class PriceMismatchError(StoreError):
    pass


class OrderStateError(StoreError):
    pass


class PaymentStateError(StoreError):
    pass


class DuplicateError(StoreError):
    pass


class ReferencedRecordError(StoreError):
    pass
