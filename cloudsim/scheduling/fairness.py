"""Max-min fair sharing of a capacity among competing consumers."""

from typing import List, Sequence


def max_min_fair_share(requests: Sequence[float], capacity: float) -> List[float]:
    """Split `capacity` among `requests` by max-min fairness.

    Consumers asking for less than an equal share get what they ask for;
    the capacity they leave over is divided equally among the rest. The
    result keeps the order of `requests`.
    """
    shares = [0.0] * len(requests)
    if not requests or capacity <= 0:
        return shares

    # Ties are broken by position so the result is deterministic.
    order = sorted(range(len(requests)), key=lambda i: (requests[i], i))
    remaining = float(capacity)
    left = len(requests)
    for i in order:
        fair = remaining / left
        share = min(max(float(requests[i]), 0.0), fair)
        shares[i] = share
        remaining -= share
        left -= 1
    return shares
