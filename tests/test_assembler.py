"""End-to-end tests for the deployment assembler."""

import json
import os
import sys

import pytest
import yaml

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from internal.config.store import ConfigStore, parse_config
from internal.models.errors import InvariantViolation, MissingSecretError
from internal.models.types import CapacityProvider, InfraState
from internal.planner.assembler import plan_environment
from internal.secrets.base import MAINTENANCE_HEADER_NAME, MAINTENANCE_HEADER_SECRET
from internal.secrets.providers.static import StaticSecretProvider

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config", "environments.yaml")
SECRET = "s3cr3t-Value"


@pytest.fixture
def config():
    return ConfigStore(CONFIG_PATH).load()


@pytest.fixture
def secrets():
    return StaticSecretProvider({
        MAINTENANCE_HEADER_NAME: "X-Maintenance-Bypass",
        MAINTENANCE_HEADER_SECRET: SECRET,
    })


def _plan(config, secrets, env_name, state):
    env_config = config.get(env_name)
    return plan_environment(env_config.environment(state), env_config, secrets)


def _active_names(plan) -> set:
    return {s.name for s in plan.services if s.active}


# ── Activation ───────────────────────────────────────────────────────────────

def test_running_activates_all_long_lived_services(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.RUNNING)
    assert _active_names(plan) == {
        "graasp", "graasp-library", "etherpad", "umami", "meilisearch", "iframely", "redis",
    }
    assert plan.service("graasp-migrate").desired_count == 0


def test_db_only_runs_migration_and_stops_core(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.DB_ONLY)
    assert plan.service("graasp").desired_count == 0
    assert plan.service("graasp-library").desired_count == 0
    migrate = plan.service("graasp-migrate")
    assert migrate.active and migrate.one_off
    assert migrate.desired_count == 1
    assert plan.service("meilisearch").active
    assert plan.service("redis").active
    assert plan.database.instance_state == "available"


def test_stopped_plans_zero_everywhere(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.STOPPED)
    assert all(s.desired_count == 0 for s in plan.services)
    assert plan.baremetal[0]["instanceState"] == "stopped"


def test_inactive_core_service_keeps_its_capacity_strategy():
    with open(CONFIG_PATH, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    raw["environments"]["production"]["services"]["graasp-library"]["taskCount"] = 2
    prod = parse_config(raw).get("production")
    secrets = StaticSecretProvider({MAINTENANCE_HEADER_NAME: "X-Bypass", MAINTENANCE_HEADER_SECRET: "x"})

    library = plan_environment(prod.environment(InfraState.DB_ONLY), prod, secrets).service("graasp-library")
    assert library.desired_count == 0
    assert library.configured_count == 2
    entries = library.capacity_strategy.entries
    assert len(entries) == 1
    assert entries[0].provider == CapacityProvider.ON_DEMAND
    assert entries[0].base == 2


def test_production_backend_upscales_with_spot(config, secrets):
    graasp = _plan(config, secrets, "production", InfraState.RUNNING).service("graasp")
    assert graasp.desired_count == 2
    assert graasp.capacity_strategy.guaranteed == 1
    assert graasp.capacity_strategy.uses_spot


def test_autoscaling_floor_follows_desired_count(config, secrets):
    running = _plan(config, secrets, "production", InfraState.RUNNING).service("graasp")
    stopped = _plan(config, secrets, "production", InfraState.DB_ONLY).service("graasp")
    assert running.autoscaling["minCapacity"] == 2
    assert stopped.autoscaling["minCapacity"] == 0
    assert running.autoscaling["metric"] == "ECSServiceAverageCPUUtilization"


def test_target_hosts(config, secrets):
    dev = _plan(config, secrets, "dev", InfraState.RUNNING)
    prod = _plan(config, secrets, "production", InfraState.RUNNING)
    assert dev.service("graasp").target_host == "api.dev.graasp.org"
    assert prod.service("graasp").target_host == "api.graasp.org"
    assert prod.service("redis").target_host is None


# ── Database ─────────────────────────────────────────────────────────────────

def test_database_stopped_where_configured(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.STOPPED)
    assert plan.database.active is False
    assert plan.database.instance_state == "stopped"
    assert plan.database.deletion_protection is True


def test_database_kept_running_in_production(config, secrets):
    plan = _plan(config, secrets, "production", InfraState.STOPPED)
    assert plan.database.active is False
    assert plan.database.instance_state == "available"
    assert plan.database.enable_replication is True


# ── Maintenance ──────────────────────────────────────────────────────────────

@pytest.mark.parametrize("state", [InfraState.RESTRICTED, InfraState.DB_ONLY, InfraState.STOPPED])
def test_maintenance_requires_secrets(config, state):
    with pytest.raises(MissingSecretError):
        _plan(config, StaticSecretProvider(), "staging", state)


def test_running_needs_no_secrets(config):
    plan = _plan(config, StaticSecretProvider(), "staging", InfraState.RUNNING)
    assert plan.challenge is None
    assert plan.to_dict()["maintenance"]["edgeFunctionAssociation"] is None


def test_restricted_gates_every_rule(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.RESTRICTED)
    assert plan.challenge is not None
    for rule in plan.listener.rules:
        assert rule.challenge == plan.challenge
    assert plan.listener.route("api.dev.graasp.org", {})["type"] == "redirect"
    assert plan.listener.route("api.dev.graasp.org", {"X-Maintenance-Bypass": SECRET})["type"] == "forward"


def test_listener_only_forwards_to_active_services(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.DB_ONLY)
    forwards = {r.action["targetGroup"] for r in plan.listener.rules if r.action["type"] == "forward"}
    assert forwards == {"etherpad", "umami"}


def test_websites_gated_except_maintenance_site(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.RESTRICTED)
    sites = {s["name"]: s for s in plan.websites}
    assert sites["maintenance"]["maintenanceFunction"] is None
    assert sites["builder"]["maintenanceFunction"] == "viewer-request"
    assert sites["client"]["alias"] == "dev.graasp.org"
    assert sites["map"]["alias"] == "map.dev.graasp.org"


def test_websites_not_gated_when_running(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.RUNNING)
    assert all(s["maintenanceFunction"] is None for s in plan.websites)


# ── Serialisation ────────────────────────────────────────────────────────────

def test_secret_redacted_by_default(config, secrets):
    plan = _plan(config, secrets, "dev", InfraState.RESTRICTED)
    assert SECRET not in json.dumps(plan.to_dict())
    assert SECRET in json.dumps(plan.to_dict(include_secrets=True))


def test_plan_is_idempotent(config, secrets):
    first = json.dumps(_plan(config, secrets, "production", InfraState.RESTRICTED).to_dict(), sort_keys=True)
    second = json.dumps(_plan(config, secrets, "production", InfraState.RESTRICTED).to_dict(), sort_keys=True)
    assert first == second


def test_environments_are_isolated(config, secrets):
    before = _plan(config, secrets, "production", InfraState.RUNNING).to_dict()
    _plan(config, secrets, "dev", InfraState.STOPPED)
    after = _plan(config, secrets, "production", InfraState.RUNNING).to_dict()
    assert before == after


def test_security_groups_planned_regardless_of_state(config, secrets):
    running = _plan(config, secrets, "dev", InfraState.RUNNING)
    stopped = _plan(config, secrets, "dev", InfraState.STOPPED)
    assert [n.to_dict() for n in running.security_groups] == [n.to_dict() for n in stopped.security_groups]
    assert len(running.security_groups) == 10


def test_plan_dict_shape(config, secrets):
    data = _plan(config, secrets, "staging", InfraState.DB_ONLY).to_dict()
    assert set(data) == {
        "environment", "activation", "maintenance", "services", "baremetal",
        "database", "securityGroups", "loadBalancer", "websites",
    }
    assert data["environment"]["infraState"] == "db-only"
    assert data["activation"]["migration"] is True


def test_mismatched_environment_config_rejected(config, secrets):
    env = config.get("dev").environment(InfraState.RUNNING)
    with pytest.raises(InvariantViolation):
        plan_environment(env, config.get("production"), secrets)
