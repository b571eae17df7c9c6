"""Path constants and configuration loading."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from perfconform.domain.models import TuningCategory

# .perfconform/ directory structure
PERFCONFORM_DIR = ".perfconform"
CONFIG_FILE = "config.yaml"
LOGS_DIR = "logs"
REPORTS_DIR = "reports"

DEFAULT_PROFILE_NAME = "ci"
PROFILE_ENV_VAR = "PERF_TEST_PROFILE"

NODE_ROLE_LABEL = "node-role.kubernetes.io"
HOSTNAME_LABEL = "kubernetes.io/hostname"
NAMESPACE_NODE_TUNING = "openshift-cluster-node-tuning-operator"
NAMESPACE_MACHINE_CONFIG = "openshift-machine-config-operator"
PROFILE_NAME_WORKER_RT = "openshift-node-real-time-kernel"
PROFILE_NAME_NETWORK_LATENCY = "openshift-node-network-latency"
FEATURE_GATE_NAME = "cluster"
LATENCY_SENSITIVE = "LatencySensitive"

DEFAULT_TUNING_TARGETS: dict[str, dict[str, str]] = {
    TuningCategory.REAL_TIME_KERNEL.value: {
        "kernel.hung_task_timeout_secs": "600",
        "kernel.nmi_watchdog": "0",
        "kernel.sched_rt_runtime_us": "-1",
        "vm.stat_interval": "10",
        "kernel.timer_migration": "0",
    },
    TuningCategory.NETWORK_LATENCY.value: {
        "net.ipv4.tcp_fastopen": "3",
        "kernel.sched_min_granularity_ns": "10000000",
        "vm.dirty_ratio": "10",
        "vm.dirty_background_ratio": "3",
        "vm.swappiness": "10",
        "kernel.sched_migration_cost_ns": "5000000",
    },
}


def perfconform_dir(project_root: Path) -> Path:
    """Return the .perfconform directory path for a working directory."""
    return project_root / PERFCONFORM_DIR


def config_file(project_root: Path) -> Path:
    """Return the config.yaml path."""
    return perfconform_dir(project_root) / CONFIG_FILE


def logs_dir(project_root: Path) -> Path:
    """Return the logs directory path."""
    return perfconform_dir(project_root) / LOGS_DIR


def reports_dir(project_root: Path) -> Path:
    """Return the reports directory path."""
    return perfconform_dir(project_root) / REPORTS_DIR


def component_name(profile_name: str, prefix: str) -> str:
    """Name of an object rendered for a performance profile, e.g. ``openshift-node-real-time-kernel-ci``."""
    return f"{prefix}-{profile_name}"


@dataclass(frozen=True)
class ConformanceConfig:
    """Settings for one verification run.

    Built once at startup and handed to the scenario; never mutated.
    """

    profile_name: str = DEFAULT_PROFILE_NAME
    role: str = "worker-rt"
    poll_interval: float = 2.0
    timeout: float = 480.0
    workload_timeout: float = 60.0
    tuning_namespace: str = NAMESPACE_NODE_TUNING
    testing_namespace: str = "performance-addon-operators-testing"
    tuned_label: Mapping[str, str] = field(default_factory=lambda: {"openshift-app": "tuned"})
    stress_image: str = "vish/stress"
    preboot_script: str = "/usr/local/bin/pre-boot-tuning.sh"
    tuning_targets: Mapping[str, Mapping[str, str]] = field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_TUNING_TARGETS.items()}
    )

    @property
    def node_selector(self) -> dict[str, str]:
        """Label selector matching nodes (and their profile) of ``role``."""
        return {f"{NODE_ROLE_LABEL}/{self.role}": ""}

    @property
    def active_profile_name(self) -> str:
        return component_name(self.profile_name, PROFILE_NAME_WORKER_RT)

    def tuned_object_name(self, category: TuningCategory) -> str:
        """Name of the Tuned object rendered for ``category``."""
        if category is TuningCategory.REAL_TIME_KERNEL:
            return self.active_profile_name
        return PROFILE_NAME_NETWORK_LATENCY


_DEFAULT_CONFIG = """\
# perfconform configuration
role: worker-rt
poll_interval: 2
timeout: 480
workload_timeout: 60
stress_image: vish/stress
"""


def _from_dict(data: Mapping[str, Any], base: ConformanceConfig) -> ConformanceConfig:
    known = {f.name for f in fields(ConformanceConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        msg = f"unknown configuration keys: {', '.join(unknown)}"
        raise ValueError(msg)

    overrides: dict[str, Any] = dict(data)
    for key in ("poll_interval", "timeout", "workload_timeout"):
        if key in overrides:
            overrides[key] = float(overrides[key])
    if "tuning_targets" in overrides:
        merged = {k: dict(v) for k, v in base.tuning_targets.items()}
        for category, sysctls in (overrides["tuning_targets"] or {}).items():
            merged[str(category)] = {str(k): str(v) for k, v in (sysctls or {}).items()}
        overrides["tuning_targets"] = merged
    return replace(base, **overrides)


def load_config(path: Path | None = None, *, profile_name: str | None = None) -> ConformanceConfig:
    """Load configuration from YAML, falling back to defaults.

    ``profile_name`` (normally from the environment) wins over the file.
    """
    config = ConformanceConfig()
    if path is not None and path.exists():
        data: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        config = _from_dict(data, config)
    if profile_name:
        config = replace(config, profile_name=profile_name)
    return config


def init_config(project_root: Path) -> Path:
    """Create .perfconform/ with a default config.yaml.

    Existing files are left untouched. Returns the config path.
    """
    logs_dir(project_root).mkdir(parents=True, exist_ok=True)
    reports_dir(project_root).mkdir(exist_ok=True)
    cf = config_file(project_root)
    if not cf.exists():
        cf.write_text(_DEFAULT_CONFIG)
    return cf
