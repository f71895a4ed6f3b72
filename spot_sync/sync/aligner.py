"""
Insertion-only alignment of track id sequences.

Given the track ids a playlist should contain (desired) and the ids the
Spotify playlist contains now (existing), align() computes where to insert
the missing ids so that existing becomes as close as possible to desired,
without ever removing or reordering what is already there.

The alignment is an edit distance with skewed costs:

    keep an existing element unmatched     epsilon (a power of two <= 1/len(existing))
    insert a desired element               1
    pair two elements                      0 if equal, else max(len(desired), len(existing))

Pairing unequal elements is never cheaper than inserting, and leaving
existing elements alone is almost free, so the cheapest path inserts only
what is missing. Epsilon is a power of two so the sums stay exact.
"""

import math
from typing import Callable, Hashable, Sequence, TypeVar

from spot_sync.spotify.models import InsertionOp

E = TypeVar("E")


def levenshtein(
    init: Sequence[E],
    fin: Sequence[E],
    ins: Callable[[E], float] = lambda element: 1,
    delete: Callable[[E], float] = lambda element: 1,
    sub: Callable[[E, E], float] = lambda a, b: 0 if a == b else 1
) -> list[list[float]]:
    """
    Compute the full edit distance table between two sequences.

    Args:
        init: Starting sequence (table rows).
        fin: Final sequence (table columns).
        ins: Cost of inserting an element of fin.
        delete: Cost of deleting an element of init.
        sub: Cost of substituting an element of init by one of fin.

    Returns:
        Table of (len(init) + 1) rows by (len(fin) + 1) columns where
        table[i][f] is the cheapest cost of turning init[:i] into fin[:f].
    """
    first = [0.0]
    for element in fin:
        first.append(first[-1] + ins(element))
    table = [first]

    for i, init_element in enumerate(init):
        previous = table[i]
        row = [previous[0] + delete(init_element)]
        for f, fin_element in enumerate(fin):
            row.append(min(
                previous[f + 1] + delete(init_element),
                row[f] + ins(fin_element),
                previous[f] + sub(init_element, fin_element),
            ))
        table.append(row)

    return table


def align(desired: Sequence[Hashable | None], existing: Sequence[Hashable | None]) -> list[InsertionOp]:
    """
    Compute the insertions that turn existing into desired.

    None entries stand for tracks without a Spotify id (unmatched local
    tracks, local files in the Spotify playlist). They take part in the
    alignment but are never inserted.

    Args:
        desired: Track ids in the order the playlist should have.
        existing: Track ids currently in the Spotify playlist.

    Returns:
        InsertionOps in decreasing position order. Positions index into
        existing as it is now; applying the ops in the returned order keeps
        them valid. Empty when nothing is missing.

    Example:
        align(["a", "b", "c"], ["a", "c"])
        # [InsertionOp(position=1, elements=("b",))]
    """
    if not existing:
        elements = tuple(element for element in desired if element is not None)
        return [InsertionOp(0, elements)] if elements else []

    epsilon = 2.0 ** math.floor(math.log2(1 / len(existing)))
    mismatch = max(len(desired), len(existing))
    table = levenshtein(
        desired,
        existing,
        ins=lambda element: epsilon,
        sub=lambda a, b: 0 if a == b else mismatch,
    )

    d = len(desired)
    e = len(existing)
    result: list[InsertionOp] = []
    # Collected back to front
    pending: list = []

    def flush() -> None:
        if pending:
            result.append(InsertionOp(e, tuple(reversed(pending))))
            pending.clear()

    while d > 0:
        if e == 0:
            d -= 1
            if desired[d] is not None:
                pending.append(desired[d])
            continue

        best = min(table[d - 1][e], table[d][e - 1], table[d - 1][e - 1])
        if best == table[d][e - 1]:
            flush()
            e -= 1
        elif best == table[d - 1][e - 1]:
            flush()
            d -= 1
            e -= 1
        else:
            d -= 1
            if desired[d] is not None:
                pending.append(desired[d])

    flush()
    return result
