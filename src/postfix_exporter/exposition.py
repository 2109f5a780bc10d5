"""
Rendering of metric samples in the Prometheus text exposition format.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import attrs

from postfix_exporter.catalog import COUNTER_SERIES, FAMILIES, CounterKey, MetricFamily

__all__ = [
    "Sample",
    "counter_samples",
    "render",
]

Number = Union[int, float]


@attrs.frozen
class Sample:
    family: str
    value: Number
    labels: Mapping[str, str] = attrs.field(factory=dict)


def counter_samples(counters: Mapping[CounterKey, int]) -> List[Sample]:
    return [
        Sample(family=family, value=counters.get(key, 0), labels=labels)
        for key, (family, labels) in COUNTER_SERIES.items()
    ]


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _format_sample(name: str, sample: Sample) -> str:
    if not sample.labels:
        return f"{name} {_format_value(sample.value)}"
    labels = ",".join(f'{key}="{_escape(str(value))}"' for key, value in sample.labels.items())
    return f"{name}{{{labels}}} {_format_value(sample.value)}"


def render(
    samples: Iterable[Sample],
    prefix: str,
    families: Sequence[MetricFamily] = FAMILIES,
    header: Optional[Sequence[str]] = None,
) -> str:
    """
    Render samples as an exposition document.

    Samples are grouped by family in the order of ``families``. Within a family they
    keep the order in which they were given. Each family gets its HELP and TYPE lines
    once, and families without samples are left out.

    Parameters
    ----------
    samples
        Samples to render, counters and gauges alike
    prefix
        Metric name prefix, joined to the family name with an underscore
    families
        Known families in rendering order
    header
        Optional comment lines written at the top of the document

    Returns
    -------
    The document, terminated by a newline

    Raises
    ------
    KeyError
        If a sample belongs to a family not in ``families``

    """
    known = {family.name for family in families}
    grouped: Dict[str, List[Sample]] = {}
    for sample in samples:
        if sample.family not in known:
            raise KeyError(f"Unknown metric family: {sample.family}")
        grouped.setdefault(sample.family, []).append(sample)

    lines = [f"# {line}" for line in header or ()]
    for family in families:
        family_samples = grouped.get(family.name)
        if not family_samples:
            continue
        name = f"{prefix}_{family.name}" if prefix else family.name
        lines.append(f"# HELP {name} {family.help}")
        lines.append(f"# TYPE {name} {family.type}")
        lines.extend(_format_sample(name, sample) for sample in family_samples)
    return "\n".join(lines) + "\n"
