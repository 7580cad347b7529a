from __future__ import annotations


class BondEngineError(Exception):
    """Base exception for bond calculation errors."""
    pass


class InvalidArgumentError(BondEngineError, ValueError):
    """Raised when bond terms, rates or cash-flow inputs are invalid."""
    pass
