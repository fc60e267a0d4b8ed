"""CIDR sub-block allocation."""

import ipaddress
from typing import Any

from cachetools import LRUCache, cached
from cachetools.keys import typedkey

from stackplan.errors import AddressSpaceExhausted, InvalidPrefix
from stackplan.params import ComputedExpression, contains_markers


def _check_request(additional_bits: Any, index: Any) -> None:
    """Validate the parts of a request that do not depend on the parent."""
    if isinstance(additional_bits, bool) or not isinstance(additional_bits, int):
        raise InvalidPrefix(
            f"additional_bits must be an integer, got {additional_bits!r}"
        )
    if additional_bits < 1:
        raise InvalidPrefix(f"additional_bits must be at least 1, got {additional_bits}")
    if isinstance(index, bool) or not isinstance(index, int):
        raise AddressSpaceExhausted(f"index must be an integer, got {index!r}")
    if not 0 <= index < 2**additional_bits:
        raise AddressSpaceExhausted(
            f"index {index} does not fit in {additional_bits} additional bits "
            f"(valid range 0..{2**additional_bits - 1})"
        )


@cached(cache=LRUCache(maxsize=1024), key=typedkey)
def allocate(parent_cidr: str, additional_bits: int, index: int) -> str:
    """Compute sub-block `index` of `parent_cidr` with `additional_bits` more bits.

    Host bits set in the parent are masked off.

    Args:
        parent_cidr: Parent block, e.g. "172.16.0.0/16".
        additional_bits: Number of bits added to the parent's prefix (>= 1).
        index: Which sub-block to return, 0 <= index < 2**additional_bits.

    Returns:
        The sub-block in CIDR notation, e.g. "172.16.2.0/24".

    Raises:
        InvalidPrefix: If the parent is not a CIDR block or the new prefix
            length would exceed the address width.
        AddressSpaceExhausted: If index is outside the available sub-blocks.
    """
    try:
        network = ipaddress.ip_network(parent_cidr, strict=False)
    except (TypeError, ValueError) as e:
        raise InvalidPrefix(f"{parent_cidr!r} is not a valid CIDR block") from e

    _check_request(additional_bits, index)
    new_prefix = network.prefixlen + additional_bits
    if new_prefix > network.max_prefixlen:
        raise InvalidPrefix(
            f"/{network.prefixlen} + {additional_bits} bits gives /{new_prefix}, "
            f"longer than the {network.max_prefixlen}-bit address width"
        )

    base = int(network.network_address) + (index << (network.max_prefixlen - new_prefix))
    return str(type(network)((base, new_prefix)))


def allocate_lazy(parent: Any, additional_bits: int, index: int) -> Any:
    """Allocate now if the parent is known, else return a deferred descriptor.

    When `parent` is a string the result of allocate() is returned. When it
    holds a reference or expression the bits and index are checked and a
    cidrsubnet ComputedExpression is returned for the apply engine to evaluate
    once the parent is realized.

    Raises:
        InvalidPrefix: If `parent` is neither a string nor deferred.
    """
    if isinstance(parent, str):
        return allocate(parent, additional_bits, index)
    if not contains_markers(parent):
        raise InvalidPrefix(f"{parent!r} is not a valid CIDR block")
    _check_request(additional_bits, index)
    return ComputedExpression("cidrsubnet", (parent, additional_bits, index))


def blocks_overlap(bits_a: int, index_a: int, bits_b: int, index_b: int) -> bool:
    """Whether two requests against the same parent cover overlapping ranges.

    Does not need the parent's value: the shorter request contains the longer
    one exactly when the longer index, truncated to the shorter width,
    equals the shorter index.
    """
    if bits_a > bits_b:
        bits_a, index_a, bits_b, index_b = bits_b, index_b, bits_a, index_a
    return index_b >> (bits_b - bits_a) == index_a
