"""
Identifiers the POS provider accepts.

The provider wants numeric product ids and a terminal transaction id of at
most 10 characters. Internal ids that are not already numeric are folded
into a bounded numeric range with a rolling checksum, so the same input
always maps to the same provider id.
"""

from __future__ import annotations

import random
import time

PRODUCT_ID_MODULUS = 1_000_000_000
TERMINAL_TRAN_ID_LENGTH = 10
TERMINAL_TRAN_EPOCH_DIGITS = 7


def fold_to_numeric(value: str) -> str:
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) % PRODUCT_ID_MODULUS
    # 0 is not a valid provider product id
    return str(h or 1)


def provider_product_id(internal_id) -> str:
    text = str(internal_id)
    if text.isdigit() and len(text) <= 9:
        return text.lstrip("0") or "0"
    return fold_to_numeric(text)


def table_product_id(table_id: int) -> str:
    return fold_to_numeric(f"table:{table_id}")


def cast_product_id(cast_id: int) -> str:
    return fold_to_numeric(f"cast:{cast_id}")


def terminal_tran_id(now: float | None = None, rng: random.Random | None = None) -> str:
    """Last 7 digits of epoch seconds plus 3 random digits."""
    seconds = int(time.time() if now is None else now)
    rng = rng or random
    head = str(seconds)[-TERMINAL_TRAN_EPOCH_DIGITS:]
    pad = TERMINAL_TRAN_ID_LENGTH - len(head)
    tail = "".join(str(rng.randrange(10)) for _ in range(pad))
    return head + tail
