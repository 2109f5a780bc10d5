import logging
from collections import Counter
from typing import Iterable, Sequence, Union

from postfix_exporter.catalog import PATTERN_CATALOG, CounterKey, PatternRule

__all__ = ["classify"]

logger = logging.getLogger(__name__)


def classify(
    lines: Iterable[Union[bytes, str]],
    catalog: Sequence[PatternRule] = PATTERN_CATALOG,
) -> "Counter[CounterKey]":
    """
    Count the events of every rule in ``catalog`` over ``lines`` in a single pass.

    Every rule matching a line fires, so one line can increment several counters.
    Lines that are not valid UTF-8 are skipped.

    Parameters
    ----------
    lines
        Raw log lines, as read from the log source
    catalog
        Rules to evaluate on each line

    Returns
    -------
    Increment per counter key. Keys without any match are absent.

    """
    increments: Counter = Counter()
    skipped = 0
    for raw in lines:
        if isinstance(raw, bytes):
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError:
                skipped += 1
                continue
        else:
            line = raw
        line = line.rstrip("\r\n")
        if not line:
            continue
        for rule in catalog:
            if rule.matches(line):
                for key in rule.targets:
                    increments[key] += 1
    if skipped:
        logger.debug(f"Skipped {skipped} undecodable log lines")
    return increments
