"""Security-group dependency graph builder.

Each service gets one security group that denies all ingress except tcp on
its own port from the groups named as its callers, and allows all egress.
A caller's group must already exist before a callee's rule can reference it,
so descriptors are processed strictly in input order and may only name
callers built earlier.

The graph is independent of activation: groups exist for stopped services
too, so turning a service back on never changes network policy.
"""

import logging

from internal.models.errors import DependencyOrderViolation
from internal.models.types import SecurityGroupNode, ServiceDescriptor

logger = logging.getLogger(__name__)


def build_graph(services) -> list:
    """Build security-group nodes from ordered service descriptors.

    Args:
        services: Iterable of ServiceDescriptor, callers before callees.

    Returns:
        List of SecurityGroupNode in input order. A node referenced by several
        callees is the same object everywhere.

    Raises:
        DependencyOrderViolation: If a descriptor names a caller that is not
            built yet (forward reference, self reference or unknown name), or
            a name is defined twice.
    """
    built: dict = {}
    nodes = []
    for svc in services:
        if not isinstance(svc, ServiceDescriptor):
            raise TypeError(f"Expected ServiceDescriptor, got {type(svc).__name__}")
        if svc.name in built:
            raise DependencyOrderViolation(svc.name, svc.name, "security group defined twice")

        callers = []
        seen = set()
        for caller_name in svc.allowed_callers:
            if caller_name in seen:
                continue
            if caller_name == svc.name:
                raise DependencyOrderViolation(svc.name, caller_name, "a group cannot allow itself")
            caller = built.get(caller_name)
            if caller is None:
                logger.error("Security group '%s' references unbuilt caller '%s'", svc.name, caller_name)
                raise DependencyOrderViolation(svc.name, caller_name)
            seen.add(caller_name)
            callers.append(caller)

        node = SecurityGroupNode(
            name=svc.name,
            port=svc.port,
            allowed_callers=tuple(callers),
            public_ports=tuple(svc.public_ports),
        )
        built[svc.name] = node
        nodes.append(node)
    return nodes


def callers_of(nodes, name: str) -> list:
    """Names of the groups allowed to reach `name`."""
    for node in nodes:
        if node.name == name:
            return [c.name for c in node.allowed_callers]
    raise KeyError(name)


def reachable_from(nodes, source: str) -> list:
    """Names of every group `source` may call directly, in graph order."""
    return [n.name for n in nodes if any(c.name == source for c in n.allowed_callers)]
