# pricewatch/pricing/disambiguator.py

"""Pick the single most plausible price out of a page's candidates."""

import logging
import statistics
from collections.abc import Sequence

from pricewatch.models.parsed_price import ParsedPrice, PriceCandidate

logger = logging.getLogger("pricewatch.pricing")

# Priority given to bare ParsedPrice values with no selector context
_UNRANKED_PRIORITY = 99


def _as_candidate(
    value: PriceCandidate | ParsedPrice,
) -> PriceCandidate:
    if isinstance(value, PriceCandidate):
        return value
    return PriceCandidate(price=value, priority=_UNRANKED_PRIORITY)


def find_most_likely_price(
    candidates: Sequence[PriceCandidate | ParsedPrice],
) -> ParsedPrice | None:
    """Return the most plausible price among *candidates*.

    Candidates are in discovery order.  Repeats of the same value
    count once, so a price printed in several DOM nodes wins outright.
    With several distinct values only those from the best (lowest)
    priority survive; if that still leaves more than one, the value
    nearest the median of every candidate amount is chosen, earliest
    first on ties.  A lone "was $X" figure cannot drag the result.
    """
    if not candidates:
        return None

    ranked = [_as_candidate(c) for c in candidates]

    distinct: list[ParsedPrice] = []
    for candidate in ranked:
        if candidate.price not in distinct:
            distinct.append(candidate.price)
    if len(distinct) == 1:
        return distinct[0]

    best_priority = min(c.priority for c in ranked)
    top: list[ParsedPrice] = []
    for candidate in ranked:
        if (
            candidate.priority == best_priority
            and candidate.price not in top
        ):
            top.append(candidate.price)
    if len(top) == 1:
        return top[0]

    median = statistics.median(c.price.amount for c in ranked)
    chosen = min(top, key=lambda p: abs(p.amount - median))
    logger.debug(
        "Disambiguated %d distinct prices to %s (median %s)",
        len(distinct),
        chosen,
        median,
    )
    return chosen
