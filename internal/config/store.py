"""Static per-environment configuration.

The YAML file is parsed once into frozen dataclasses; planners receive those
structs as arguments and never read the file themselves.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

import yaml

from internal.models.errors import ConfigError
from internal.models.types import (
    Environment, InfraState, SpotPreference, VALID_ENVIRONMENTS, VALID_REGIONS,
)
from internal.topology.catalog import SERVICES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/environments.yaml"
VALID_DEACTIVATION_MODES = ("stop", "keep-running")


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    task_count: int
    cpu: str
    memory: str
    spot_preference: SpotPreference


@dataclass(frozen=True)
class DatabaseConfig:
    enable_replication: bool
    backup_retention_period: int
    deactivation: str


@dataclass(frozen=True)
class EnvironmentConfig:
    name: str
    region: str
    subdomain: Optional[str]
    database: DatabaseConfig
    gatekeeper_instance_type: str
    services: tuple

    def service(self, name: str) -> ServiceConfig:
        for svc in self.services:
            if svc.name == name:
                return svc
        raise ConfigError(f"Environment '{self.name}' has no configuration for service '{name}'")

    def environment(self, infra_state: InfraState) -> Environment:
        return Environment(
            name=self.name,
            region=self.region,
            subdomain=self.subdomain,
            infra_state=infra_state,
        )


@dataclass(frozen=True)
class DeploymentConfig:
    environments: tuple

    def get(self, name: str) -> EnvironmentConfig:
        for env in self.environments:
            if env.name == name:
                return env
        raise ConfigError(
            f"Unknown environment '{name}' (configured: {', '.join(self.names())})"
        )

    def names(self) -> list:
        return [e.name for e in self.environments]


def _parse_service(env_name: str, name: str, raw, errors: list) -> Optional[ServiceConfig]:
    where = f"{env_name}.services.{name}"
    if not isinstance(raw, dict):
        errors.append(f"{where} must be a mapping")
        return None

    count = raw.get("taskCount", 1)
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        errors.append(f"{where}.taskCount must be an integer >= 0")
        count = None

    pref_raw = raw.get("spotPreference")
    try:
        pref = SpotPreference(pref_raw)
    except ValueError:
        valid = ", ".join(p.value for p in SpotPreference)
        errors.append(f"{where}.spotPreference must be one of {valid}, got {pref_raw!r}")
        pref = None

    if count is None or pref is None:
        return None
    return ServiceConfig(
        name=name,
        task_count=count,
        cpu=str(raw.get("cpu", "256")),
        memory=str(raw.get("memory", "512")),
        spot_preference=pref,
    )


def _mapping(raw: dict, key: str, env_name: str, errors: list) -> Optional[dict]:
    """Return the `key` block of an environment, {} when absent, None when malformed."""
    block = raw.get(key)
    if block is None:
        return {}
    if not isinstance(block, dict):
        errors.append(f"{env_name}.{key} must be a mapping")
        return None
    return block


def _parse_environment(name: str, raw, errors: list) -> Optional[EnvironmentConfig]:
    if name not in VALID_ENVIRONMENTS:
        errors.append(f"environment name must be one of {VALID_ENVIRONMENTS}, got '{name}'")
        return None
    if not isinstance(raw, dict):
        errors.append(f"{name} must be a mapping")
        return None

    region = raw.get("region")
    if region not in VALID_REGIONS:
        errors.append(f"{name}.region must be one of {VALID_REGIONS}")

    subdomain = raw.get("subdomain")
    if subdomain is not None and (not isinstance(subdomain, str) or not subdomain):
        errors.append(f"{name}.subdomain must be a non-empty string when set")

    db_raw = _mapping(raw, "database", name, errors) or {}
    retention = db_raw.get("backupRetentionPeriod", 1)
    if isinstance(retention, bool) or not isinstance(retention, int) or retention < 0:
        errors.append(f"{name}.database.backupRetentionPeriod must be an integer >= 0")
    deactivation = db_raw.get("deactivation", "keep-running")
    if deactivation not in VALID_DEACTIVATION_MODES:
        errors.append(f"{name}.database.deactivation must be one of {VALID_DEACTIVATION_MODES}")
    database = DatabaseConfig(
        enable_replication=bool(db_raw.get("enableReplication", False)),
        backup_retention_period=retention,
        deactivation=deactivation,
    )

    services_raw = _mapping(raw, "services", name, errors)
    services = []
    if services_raw is not None:
        for svc in SERVICES:
            if svc.name not in services_raw:
                errors.append(f"{name}.services.{svc.name} is missing")
                continue
            parsed = _parse_service(name, svc.name, services_raw[svc.name], errors)
            if parsed is not None:
                services.append(parsed)
        unknown = sorted(str(k) for k in services_raw if k not in {s.name for s in SERVICES})
        if unknown:
            errors.append(f"{name}.services has unknown services: {unknown}")

    gatekeeper = _mapping(raw, "gatekeeper", name, errors) or {}
    return EnvironmentConfig(
        name=name,
        region=region,
        subdomain=subdomain,
        database=database,
        gatekeeper_instance_type=str(gatekeeper.get("instanceType", "t2.micro")),
        services=tuple(services),
    )


def parse_config(data) -> DeploymentConfig:
    """Validate raw configuration data.

    Raises:
        ConfigError: listing every problem found.
    """
    if not isinstance(data, dict) or not isinstance(data.get("environments"), dict):
        raise ConfigError("Configuration must contain an 'environments' mapping")

    errors = []
    envs = []
    for name, raw in data["environments"].items():
        env = _parse_environment(name, raw, errors)
        if env is not None:
            envs.append(env)
    if errors:
        logger.error("Deployment configuration has %d problem(s)", len(errors))
        raise ConfigError("Invalid deployment configuration", errors)
    return DeploymentConfig(environments=tuple(envs))


class ConfigStore:
    def __init__(self, path: str | None = None):
        self.path = path or os.environ.get("TOPOLOGY_CONFIG_PATH", DEFAULT_CONFIG_PATH)
        self._cache = None

    def load(self) -> DeploymentConfig:
        if self._cache is None:
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as exc:
                logger.error("Cannot read configuration %s: %s", self.path, exc)
                raise ConfigError(f"Cannot read configuration '{self.path}': {exc}") from exc
            self._cache = parse_config(data)
        return self._cache

    def reload(self) -> DeploymentConfig:
        self._cache = None
        return self.load()
