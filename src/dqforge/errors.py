from __future__ import annotations


class DQForgeError(Exception):
    """Base class for exceptions raised by dqforge."""
    pass


class InvalidConfiguration(DQForgeError, ValueError):
    """Unknown apparatus type, discretization scheme, PLL mode or parameter."""
    def __init__(self, what: str, value, message: str = "Invalid configuration"):
        self.what = what
        self.value = value
        self.message = f"{message}: {what}={value!r}"
        super().__init__(self.message)


class DomainError(DQForgeError, ArithmeticError):
    """Raised when an operation leaves its numerical domain (zero voltage, singular operator)."""
    def __init__(self, message: str = "Numerical domain error"):
        self.message = message
        super().__init__(self.message)


class DimensionMismatch(DQForgeError, ValueError):
    """Raised when a vector length disagrees with the device signal list."""
    def __init__(self, name: str, expected: int, found: int):
        self.name = name
        self.expected = expected
        self.found = found
        self.message = f"{name} must have length {expected} but found {found}"
        super().__init__(self.message)
