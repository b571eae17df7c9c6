"""Persist run outcomes as YAML."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import yaml

from perfconform.config import ConformanceConfig
from perfconform.domain.models import CheckOutcome


def _outcome_to_dict(o: CheckOutcome) -> dict[str, object]:
    d: dict[str, object] = {
        "name": o.name,
        "passed": o.passed,
        "target": o.target,
        "expected": o.expected,
        "observed": o.observed,
        "attempts": o.attempts,
        "elapsed_seconds": round(o.elapsed_seconds, 3),
    }
    if not o.passed:
        d["error_kind"] = o.error_kind
        d["detail"] = o.detail
    return d


def save_report(path: Path, config: ConformanceConfig, outcomes: list[CheckOutcome]) -> Path:
    """Write outcomes to ``path`` and return it."""
    data = {
        "generated_at": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "profile": config.profile_name,
        "role": config.role,
        "passed": all(o.passed for o in outcomes),
        "outcomes": [_outcome_to_dict(o) for o in outcomes],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False))
    return path

