"""Exceptions raised by the domain layer and translated by the views."""


class ShopError(Exception):
    """Base class for errors whose message can be shown to the user."""

    status_code = 400

    def to_json(self) -> dict:
        return {"success": False, "message": str(self)}


class ValidationError(ShopError):
    pass


class NotFoundError(ShopError):
    status_code = 404


class InsufficientStockError(ShopError):
    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"available {available}, requested {requested}"
        )


class DuplicateError(ShopError):
    pass


class DayClosedError(ShopError):
    pass
