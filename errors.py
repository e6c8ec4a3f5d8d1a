"""Exceptions raised by the storefront services and stores."""

from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class NotFoundError(StorefrontError):
    """Raised when a product, cart item or order does not exist."""

    def __init__(self, kind: str, ident: Optional[str] = None):
        self.kind = kind
        self.ident = ident
        msg = f"{kind} not found"
        if ident:
            msg = f"{kind} not found: {ident}"
        super().__init__(msg)


class InsufficientStockError(StorefrontError):
    """Raised when the requested quantity exceeds what is in stock."""

    def __init__(self, product_name: str, requested: int):
        self.product_name = product_name
        self.requested = requested
        super().__init__(f"Not enough stock for {product_name} (requested {requested})")


class EmptyCartError(StorefrontError):
    """Raised on checkout of a cart with no items."""

    def __init__(self):
        super().__init__("Cart is empty. Add items before checking out.")


class InvalidInputError(StorefrontError):
    pass


class ConflictError(StorefrontError):
    """Raised when registering an email that is already taken."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User with email {email} already exists")


class NotAuthenticatedError(StorefrontError):
    def __init__(self, msg: str = "Please log in first."):
        super().__init__(msg)


class StorageError(StorefrontError):
    """Raised when the database fails in the middle of a write."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        msg = f"Storage failure during {operation}"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
