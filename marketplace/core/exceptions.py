from fastapi import HTTPException, status


class MarketplaceError(HTTPException):
    """Business-rule failure returned to the caller with a specific status.

    The detail is a dict so the error handler can lift ``message`` and
    ``errors`` straight into the standard error envelope.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: str = None):
        super().__init__(
            status_code=self.status_code,
            detail={
                "message": message or self.default_message,
                "errors": [{"code": self.code}],
            },
        )

    @property
    def message(self) -> str:
        return self.detail["message"]


class InvalidInput(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"
    default_message = "Invalid input"


class EmptyCart(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "empty_cart"
    default_message = "Cart is empty"


class InsufficientStock(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "insufficient_stock"

    def __init__(self, available: int):
        self.available = available
        super().__init__(f"Insufficient stock. Only {available} items available")


class InvalidCredentials(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"
    default_message = "Incorrect email or password"


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "You are not allowed to perform this action"


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class Conflict(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Request conflicts with the current state; retry"


class UserNotFound(NotFound):
    default_message = "User not found"


class ProductNotFound(NotFound):
    default_message = "Product not found"


class CartItemNotFound(NotFound):
    default_message = "Cart item not found"


class OrderNotFound(NotFound):
    default_message = "Order not found"


class TransactionNotFound(NotFound):
    default_message = "Transaction not found"
