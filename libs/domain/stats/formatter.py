# libs/domain/stats/formatter.py
"""Sample -> Prometheus text exposition block.

Pure and total: any input shape yields a string, possibly empty.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any, Final

from shared.contracts.v1.options import DEFAULT_QUALITY_LIMITATION_REASONS
from shared.contracts.v1.stats import PEER_CONNECTION_TYPE, Sample

QUALITY_LIMITATION_FIELD: Final = "qualityLimitationReason"
# Chrome-only verbose timing detail; unbounded cardinality, never exported
DROPPED_FIELDS: Final = frozenset({"googTimingFrameInfo"})


def escape_label_value(value: Any) -> str:
    s = value if isinstance(value, str) else _label_text(value)
    return s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _label_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_number(v: Any) -> bool:
    return isinstance(v, int | float) and not isinstance(v, bool)


def format_value(v: int | float) -> str:
    if isinstance(v, int):
        return str(v)
    if math.isnan(v):
        return "NaN"
    if math.isinf(v):
        return "+Inf" if v > 0 else "-Inf"
    if v.is_integer():
        return str(int(v))
    return repr(v)


def metric_family(stats_type: str) -> str:
    return stats_type.replace("-", "_")


def _entry_lines(
    entry: Mapping[str, Any],
    sample: Sample,
    agent_id: str | None,
    reasons: Mapping[str, int],
) -> tuple[str, list[str], list[tuple[str, int | float]]]:
    stats_type = entry["type"]
    labels = [f'pageUrl="{escape_label_value(sample.url)}"']
    if agent_id:
        labels.append(f'agent_id="{escape_label_value(agent_id)}"')
    if stats_type == PEER_CONNECTION_TYPE:
        labels.append(f'state="{sample.state}"')

    metrics: list[tuple[str, int | float]] = []
    for key, v in entry.items():
        if not isinstance(key, str) or key in DROPPED_FIELDS:
            continue
        if _is_number(v):
            metrics.append((key, v))
        elif isinstance(v, Mapping | list | tuple):
            # one level deep; sequences are keyed by index
            items = v.items() if isinstance(v, Mapping) else enumerate(v)
            for sub, subv in items:
                if _is_number(subv):
                    metrics.append((f"{key}_{sub}", subv))
        elif key == QUALITY_LIMITATION_FIELD:
            mapped = reasons.get(v) if isinstance(v, str) else None
            if mapped is not None:
                metrics.append((key, mapped))
        elif isinstance(v, str | bool):
            labels.append(f'{key}="{escape_label_value(v)}"')
    return metric_family(stats_type), labels, metrics


def format_sample(
    sample: Sample,
    agent_id: str | None = None,
    quality_limitation_reasons: Mapping[str, int] | None = None,
) -> str:
    """Render every allow-listed stats entry of `sample` as gauge lines.

    Each metric name gets one `# TYPE` line the first time it appears in
    this call. Entries that are not mappings or lack a string `type` are
    skipped.
    """
    values = sample.values
    if not isinstance(values, list) or not values:
        return ""

    reasons = (
        DEFAULT_QUALITY_LIMITATION_REASONS
        if quality_limitation_reasons is None
        else quality_limitation_reasons
    )
    declared: set[str] = set()
    out: list[str] = []
    for entry in values:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("type"), str):
            continue
        family, labels, metrics = _entry_lines(entry, sample, agent_id, reasons)
        label_text = ",".join(labels)
        for key, v in metrics:
            name = f"{family}_{key.replace('-', '_')}"
            if name not in declared:
                declared.add(name)
                out.append(f"# TYPE {name} gauge\n")
            out.append(f"{name}{{{label_text}}} {format_value(v)}\n")
    return "".join(out)
