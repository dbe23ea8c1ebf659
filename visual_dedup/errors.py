"""Exceptions raised for contract violations."""


class InvalidInputError(ValueError):
    """
    Raised when a caller breaks an input contract: mismatched sample
    lengths, impossible image geometry, inconsistent descriptor sets.

    Data-dependent degeneracies (zero union area, zero SSIM denominator,
    empty inputs) are never reported this way; they resolve to sentinel
    values or empty results instead.
    """
