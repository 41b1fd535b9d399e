"""
Checked integer arithmetic.

Counters are u32 and scores are u64; Python integers never wrap,
so the range is enforced here.
"""

from .errors import MathOverflowError

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1


def checked_add(value: int, increment: int, limit: int, what: str = "value") -> int:
    """
    Add ``increment`` to ``value``, refusing to exceed ``limit``.

    Raises:
        MathOverflowError: if the sum is above ``limit``
    """
    result = value + increment
    if result > limit:
        raise MathOverflowError(
            f"Math overflow: {what} {value} + {increment} exceeds {limit}"
        )
    return result
