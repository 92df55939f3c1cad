class FinanceError(Exception):
    """Base class for every error the finance core hands back to a caller."""


class ValidationError(FinanceError, ValueError):
    pass


class NotFound(FinanceError, LookupError):
    pass


class PermissionDenied(FinanceError):
    pass


class StoreError(FinanceError):
    pass


class StoreTimeout(StoreError):
    pass
