"""Deployment assembler: one environment + one infra state -> desired-state plan.

Flow:
  1. Resolve the activation matrix from the infra state.
  2. Build the security-group graph (independent of activation).
  3. Derive the maintenance challenge (None outside maintenance).
  4. For each compute service: desired count (0 when inactive) and the
     capacity strategy of its configured count.
  5. One-off tasks, bare-metal hosts and the database follow their classes.
  6. Listener rules for active exposed services, gated while in maintenance.
  7. Static sites, gated by the edge function while in maintenance.
  8. Re-check plan invariants.

The plan is a pure function of its inputs: no clock, randomness or shared
state, so planning the same environment twice gives equal plans and
byte-identical JSON.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from internal.maintenance.gate import (
    MAINTENANCE_SITE, edge_function_association, maintenance_challenge, render_edge_function,
)
from internal.models.errors import InvariantViolation
from internal.models.types import (
    ActivationClass, CapacityStrategy, Environment, MaintenanceChallenge, ServiceActivation,
)
from internal.network.security_groups import build_graph
from internal.policy.infra_state import resolve
from internal.policy.spot import capacity_strategy
from internal.routing.listener import ListenerPlan, build_listener
from internal.topology.catalog import BAREMETAL, DATABASE, SECURITY_GROUPS, SERVICES, WEBSITES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServicePlan:
    """Desired state of one compute service."""
    name: str
    activation_class: ActivationClass
    active: bool
    configured_count: int
    desired_count: int
    cpu: str
    memory: str
    spot_preference: str
    capacity_strategy: CapacityStrategy
    security_group: str
    one_off: bool = False
    internal_alias: Optional[str] = None
    target_host: Optional[str] = None
    autoscaling: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "activationClass": self.activation_class.value,
            "active": self.active,
            "configuredCount": self.configured_count,
            "desiredCount": self.desired_count,
            "cpu": self.cpu,
            "memory": self.memory,
            "spotPreference": self.spot_preference,
            "capacityProviderStrategy": self.capacity_strategy.to_list(),
            "securityGroup": self.security_group,
            "oneOff": self.one_off,
            "internalAlias": self.internal_alias,
            "targetHost": self.target_host,
            "autoscaling": self.autoscaling,
        }


@dataclass(frozen=True)
class DatabasePlan:
    active: bool
    instance_state: str
    enable_replication: bool
    backup_retention_period: int
    security_group: str
    deletion_protection: bool = True

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "instanceState": self.instance_state,
            "enableReplication": self.enable_replication,
            "backupRetentionPeriod": self.backup_retention_period,
            "securityGroup": self.security_group,
            "deletionProtection": self.deletion_protection,
        }


@dataclass(frozen=True)
class DeploymentPlan:
    environment: Environment
    activation: ServiceActivation
    services: tuple
    baremetal: tuple
    database: DatabasePlan
    security_groups: tuple
    listener: ListenerPlan
    edge_function: dict = field(repr=False)
    websites: tuple
    challenge: Optional[MaintenanceChallenge] = field(default=None, repr=False)

    def service(self, name: str) -> ServicePlan:
        for svc in self.services:
            if svc.name == name:
                return svc
        raise KeyError(name)

    def to_dict(self, include_secrets: bool = False) -> dict:
        edge = dict(self.edge_function)
        if self.challenge is not None and not include_secrets:
            edge["code"] = "<redacted>"
        return {
            "environment": self.environment.to_dict(),
            "activation": self.activation.to_dict(),
            "maintenance": {
                "active": self.activation.maintenance_active,
                "challenge": self.challenge.to_dict(include_secrets) if self.challenge else None,
                "edgeFunction": edge,
                "edgeFunctionAssociation": edge_function_association(self.challenge),
            },
            "services": [s.to_dict() for s in self.services],
            "baremetal": list(self.baremetal),
            "database": self.database.to_dict(),
            "securityGroups": [n.to_dict() for n in self.security_groups],
            "loadBalancer": self.listener.to_dict(include_secrets),
            "websites": list(self.websites),
        }


def _service_plan(env: Environment, env_config, definition, activation: ServiceActivation) -> ServicePlan:
    cfg = env_config.service(definition.name)
    active = activation.is_active(definition.activation_class)
    desired = cfg.task_count if active else 0
    autoscaling = None
    if definition.autoscaling is not None and not definition.one_off:
        policy = definition.autoscaling
        autoscaling = {
            "minCapacity": desired,
            "maxCapacity": policy.max_capacity,
            "metric": policy.metric,
            "targetValue": policy.target_value,
            "scaleInCooldown": policy.scale_in_cooldown,
            "scaleOutCooldown": policy.scale_out_cooldown,
        }
    if not active:
        logger.debug("[%s] service '%s' deactivated (%s)", env.name, definition.name,
                     definition.activation_class.value)
    return ServicePlan(
        name=definition.name,
        activation_class=definition.activation_class,
        active=active,
        configured_count=cfg.task_count,
        desired_count=desired,
        cpu=cfg.cpu,
        memory=cfg.memory,
        spot_preference=cfg.spot_preference.value,
        capacity_strategy=capacity_strategy(cfg.spot_preference, cfg.task_count),
        security_group=definition.security_group,
        one_off=definition.one_off,
        internal_alias=definition.internal_alias,
        target_host=env.subdomain_for(definition.load_balancer.subdomain) if definition.load_balancer else None,
        autoscaling=autoscaling,
    )


def _database_plan(env_config, activation: ServiceActivation) -> DatabasePlan:
    db = env_config.database
    if activation.database_active or db.deactivation == "keep-running":
        state = "available"
    else:
        state = "stopped"
    return DatabasePlan(
        active=activation.database_active,
        instance_state=state,
        enable_replication=db.enable_replication,
        backup_retention_period=db.backup_retention_period,
        security_group=DATABASE,
    )


def _website_plans(env: Environment, challenge) -> list:
    sites = []
    for site in WEBSITES:
        gated = challenge is not None and site.name != MAINTENANCE_SITE
        sites.append({
            "name": site.name,
            "alias": env.domain if site.apex_domain else env.subdomain_for(site.name),
            "maintenanceFunction": edge_function_association(challenge) if gated else None,
        })
    return sites


def check_plan(plan: DeploymentPlan) -> DeploymentPlan:
    """Assert plan-level invariants. Returns the plan unchanged."""
    activation = plan.activation
    for svc in plan.services:
        if not svc.active and svc.desired_count != 0:
            raise InvariantViolation(f"Inactive service '{svc.name}' plans {svc.desired_count} instances")
        if svc.active and not activation.database_active:
            raise InvariantViolation(f"Service '{svc.name}' is active without an active database")
        if any(e.base < 0 or e.weight < 0 for e in svc.capacity_strategy.entries):
            raise InvariantViolation(f"Service '{svc.name}' has a negative capacity entry")
    if (plan.challenge is not None) != activation.maintenance_active:
        raise InvariantViolation("Maintenance challenge must exist exactly while in maintenance")
    return plan


def plan_environment(env: Environment, env_config, secrets) -> DeploymentPlan:
    """Compute the full desired-state snapshot for one environment.

    Args:
        env: Environment descriptor carrying the validated infra state.
        env_config: EnvironmentConfig for the same environment.
        secrets: SecretProvider holding the maintenance header.

    Raises:
        PlanningError: any fatal planning problem (see internal.models.errors).
    """
    if env_config.name != env.name:
        raise InvariantViolation(
            f"Configuration for '{env_config.name}' cannot plan environment '{env.name}'"
        )

    activation = resolve(env.infra_state)
    logger.info("[%s] planning infra state '%s' (maintenance=%s)",
                env.name, env.infra_state.value, activation.maintenance_active)

    nodes = build_graph(SECURITY_GROUPS)
    challenge = maintenance_challenge(env, secrets)

    services = [_service_plan(env, env_config, d, activation) for d in SERVICES]

    baremetal = [
        {
            "name": b.name,
            "active": activation.is_active(b.activation_class),
            "instanceState": "running" if activation.is_active(b.activation_class) else "stopped",
            "instanceType": env_config.gatekeeper_instance_type,
            "securityGroup": b.security_group,
        }
        for b in BAREMETAL
    ]

    exposed = [
        (d.name, d.load_balancer)
        for d, svc in zip(SERVICES, services)
        if d.load_balancer is not None and svc.active
    ]
    listener = build_listener(env, exposed, challenge)

    plan = DeploymentPlan(
        environment=env,
        activation=activation,
        services=tuple(services),
        baremetal=tuple(baremetal),
        database=_database_plan(env_config, activation),
        security_groups=tuple(nodes),
        listener=listener,
        edge_function=render_edge_function(env, challenge),
        websites=tuple(_website_plans(env, challenge)),
        challenge=challenge,
    )
    return check_plan(plan)
