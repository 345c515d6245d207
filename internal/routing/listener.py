"""Load-balancer listener rules.

The HTTPS listener's default action redirects to the maintenance page, so a
request only reaches a service when a rule matches it. While maintenance is
active every rule also requires the bypass header (see
internal.maintenance.gate), which leaves ordinary visitors on the default
redirect and lets operators through.
"""

from dataclasses import dataclass, field
from typing import Optional

from internal.maintenance.gate import (
    MAINTENANCE_SITE, header_matches, maintenance_rule_conditions,
)
from internal.models.errors import InvariantViolation
from internal.models.types import Environment, MaintenanceChallenge
from internal.topology.catalog import HOST_REDIRECTS


@dataclass(frozen=True)
class RoutingRule:
    name: str
    priority: int
    host: str
    action: dict
    challenge: Optional[MaintenanceChallenge] = field(default=None, repr=False)

    @property
    def conditions(self) -> list:
        return [{"hostHeader": {"values": [self.host]}}] + maintenance_rule_conditions(self.challenge)

    def matches(self, host: str, headers) -> bool:
        """Evaluate the rule conditions for a request.

        Host and header conditions both compare values ignoring case.
        """
        if host.lower() != self.host.lower():
            return False
        if self.challenge is not None and not header_matches(self.challenge, headers, case_sensitive=False):
            return False
        return True

    def to_dict(self, include_secrets: bool = False) -> dict:
        conditions = self.conditions
        if self.challenge is not None and not include_secrets:
            conditions = conditions[:1] + [{
                "httpHeader": {"httpHeaderName": self.challenge.header_name, "values": ["***"]},
            }]
        return {
            "name": self.name,
            "priority": self.priority,
            "action": self.action,
            "conditions": conditions,
        }


@dataclass(frozen=True)
class ListenerPlan:
    default_action: dict
    http_redirect: dict
    rules: tuple

    def route(self, host: str, headers) -> dict:
        """Action the listener takes for a request: first matching rule by priority."""
        for rule in sorted(self.rules, key=lambda r: r.priority):
            if rule.matches(host, headers):
                return rule.action
        return self.default_action

    def to_dict(self, include_secrets: bool = False) -> dict:
        return {
            "defaultAction": self.default_action,
            "httpRedirect": self.http_redirect,
            "rules": [r.to_dict(include_secrets) for r in sorted(self.rules, key=lambda r: r.priority)],
        }


def forward_rule(env: Environment, service_name: str, exposure, challenge) -> RoutingRule:
    return RoutingRule(
        name=f"{service_name}-rule",
        priority=exposure.priority,
        host=env.subdomain_for(exposure.subdomain),
        action={"type": "forward", "targetGroup": service_name},
        challenge=challenge,
    )


def host_redirect_rules(env: Environment, challenge) -> list:
    rules = []
    for name, priority, origin, target, path, query, status in HOST_REDIRECTS:
        redirect = {
            "host": env.subdomain_for(target) if target else env.domain,
            "path": path,
            "protocol": "HTTPS",
            "statusCode": status,
        }
        if query is not None:
            redirect["query"] = query
        rules.append(RoutingRule(
            name=name,
            priority=priority,
            host=env.subdomain_for(origin),
            action={"type": "redirect", "redirect": redirect},
            challenge=challenge,
        ))
    return rules


def build_listener(env: Environment, exposed_services, challenge) -> ListenerPlan:
    """Listener plan for an environment.

    Args:
        env: The environment.
        exposed_services: (name, LoadBalancerExposure) pairs of active services.
        challenge: MaintenanceChallenge or None.
    """
    rules = [forward_rule(env, name, exposure, challenge) for name, exposure in exposed_services]
    rules.extend(host_redirect_rules(env, challenge))

    priorities = [r.priority for r in rules]
    if len(priorities) != len(set(priorities)):
        raise InvariantViolation(f"Duplicate listener rule priorities: {sorted(priorities)}")

    return ListenerPlan(
        default_action={
            "type": "redirect",
            "redirect": {
                "host": env.subdomain_for(MAINTENANCE_SITE),
                "protocol": "HTTPS",
                "statusCode": "HTTP_302",
            },
        },
        http_redirect={
            "type": "redirect",
            "redirect": {"port": "443", "protocol": "HTTPS", "statusCode": "HTTP_301"},
        },
        rules=tuple(rules),
    )
