"""
Cart reconciliation at login.

merge() folds a guest cart into the server cart:

1. server lines keep their order and are never dropped
2. a local line whose key is on the server adds its quantity to that line
3. any other local line is appended with a fresh id, in local order
4. totals are recomputed over the result

The merge is additive only, so it cannot conflict. It is not idempotent:
merging the same guest cart twice counts it twice, which is why the caller
clears local storage once the server has accepted the result.
"""
from dataclasses import replace
from typing import Callable

from storecart.cart.models import Cart, new_line_id
from storecart.errors import ERROR_VENDOR_MISMATCH, ValidationError


def merge(local: Cart, server: Cart, id_factory: Callable[[], str] = new_line_id) -> Cart:
    """
    Merge a guest cart into a server cart.

    Args:
        local: Guest cart (local storage)
        server: Authenticated cart as fetched from the server
        id_factory: Source of ids for appended local lines

    Returns:
        New Cart owned by the server cart's owner
    """
    if local.vendor_id != server.vendor_id:
        raise ValidationError(f"{ERROR_VENDOR_MISMATCH}: {local.vendor_id} != {server.vendor_id}")

    merged = list(server.lines)
    position = {line.key: i for i, line in enumerate(merged)}

    for line in local.lines:
        index = position.get(line.key)
        if index is not None:
            existing = merged[index]
            merged[index] = existing.with_quantity(existing.quantity + line.quantity)
        else:
            position[line.key] = len(merged)
            merged.append(replace(line, id=id_factory()))

    return server.with_lines(merged)
