from __future__ import annotations


class StrategyError(Exception):
    """Base class for every error the strategy engine raises on purpose."""


class InvalidInputError(StrategyError, ValueError):
    pass


class UnauthorizedError(StrategyError, PermissionError):
    pass


class ReentrancyError(StrategyError, RuntimeError):
    pass


class StrategyShutdownError(StrategyError, RuntimeError):
    pass


class RegistryConflictError(StrategyError):
    pass


class AlreadyRegisteredError(RegistryConflictError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Borrower already registered: {address}")


class BorrowerNotFoundError(RegistryConflictError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Borrower not registered: {address}")


class ExternalProtocolError(StrategyError, RuntimeError):
    """An external protocol call failed; the enclosing operation is aborted."""

    def __init__(self, action: str, reason: object):
        self.action = action
        self.reason = reason
        super().__init__(f"{action} failed: {reason}")
