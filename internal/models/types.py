"""Data types for the deployment topology planner."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


ROOT_DOMAIN = "graasp.org"
VALID_ENVIRONMENTS = ("dev", "staging", "production")
VALID_REGIONS = ("eu-central-1", "eu-central-2")


# ── Infra State ──────────────────────────────────────────────────────────────

class InfraState(Enum):
    """How much of the system is intentionally running.

    Ordered: RUNNING > RESTRICTED > DB_ONLY > STOPPED.
    """
    RUNNING = "running"
    RESTRICTED = "restricted"
    DB_ONLY = "db-only"
    STOPPED = "stopped"

    @property
    def level(self) -> int:
        return _STATE_LEVELS[self]

    def __lt__(self, other):
        if not isinstance(other, InfraState):
            return NotImplemented
        return self.level < other.level

    def __le__(self, other):
        if not isinstance(other, InfraState):
            return NotImplemented
        return self.level <= other.level

    def __gt__(self, other):
        if not isinstance(other, InfraState):
            return NotImplemented
        return self.level > other.level

    def __ge__(self, other):
        if not isinstance(other, InfraState):
            return NotImplemented
        return self.level >= other.level


_STATE_LEVELS = {
    InfraState.STOPPED: 0,
    InfraState.DB_ONLY: 1,
    InfraState.RESTRICTED: 2,
    InfraState.RUNNING: 3,
}


class ActivationClass(Enum):
    """Which activation flag governs a logical service."""
    DATABASE = "database"
    CACHE_AND_SEARCH = "cache-and-search"
    CORE = "core"
    MIGRATION = "migration"
    AUXILIARY = "auxiliary"


@dataclass(frozen=True)
class ServiceActivation:
    """Per-service-class desired-running flags derived from an infra state."""
    maintenance_active: bool
    database_active: bool
    cache_and_search_active: bool
    core_services_active: bool
    migration_active: bool
    auxiliary_services_active: bool

    def is_active(self, activation_class: ActivationClass) -> bool:
        return {
            ActivationClass.DATABASE: self.database_active,
            ActivationClass.CACHE_AND_SEARCH: self.cache_and_search_active,
            ActivationClass.CORE: self.core_services_active,
            ActivationClass.MIGRATION: self.migration_active,
            ActivationClass.AUXILIARY: self.auxiliary_services_active,
        }[activation_class]

    def service_flags(self) -> dict:
        """Every flag except maintenance, keyed by activation class."""
        return {c: self.is_active(c) for c in ActivationClass}

    def to_dict(self) -> dict:
        return {
            "maintenance": self.maintenance_active,
            "database": self.database_active,
            "cacheAndSearch": self.cache_and_search_active,
            "coreServices": self.core_services_active,
            "migration": self.migration_active,
            "auxiliaryServices": self.auxiliary_services_active,
        }


# ── Environment ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Environment:
    """Immutable deployment environment descriptor.

    A missing subdomain means the environment is served from the apex domain
    (production); otherwise every host is scoped under the subdomain.
    """
    name: str
    region: str
    infra_state: InfraState
    subdomain: Optional[str] = None

    @property
    def domain(self) -> str:
        if self.subdomain:
            return f"{self.subdomain}.{ROOT_DOMAIN}"
        return ROOT_DOMAIN

    def subdomain_for(self, prefix: str) -> str:
        """Host name of a service prefix, e.g. 'api' -> 'api.dev.graasp.org'."""
        return f"{prefix}.{self.domain}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "region": self.region,
            "subdomain": self.subdomain,
            "domain": self.domain,
            "infraState": self.infra_state.value,
        }


# ── Compute Capacity ─────────────────────────────────────────────────────────

class SpotPreference(Enum):
    """Per-service trade-off between spare (spot) and regular capacity.

    OnlySpot suits dev and stateless fault-tolerant services. UpscaleWithSpot
    keeps one regular instance and scales out on spot.
    """
    NO_SPOT = "NoSpot"
    ONLY_SPOT = "OnlySpot"
    UPSCALE_WITH_SPOT = "UpscaleWithSpot"


class CapacityProvider(Enum):
    ON_DEMAND = "FARGATE"
    SPOT = "FARGATE_SPOT"


@dataclass(frozen=True)
class CapacityProviderEntry:
    provider: CapacityProvider
    base: int
    weight: int

    def to_dict(self) -> dict:
        return {"capacityProvider": self.provider.value, "base": self.base, "weight": self.weight}


@dataclass(frozen=True)
class CapacityStrategy:
    """Weighted split between guaranteed and opportunistic compute."""
    entries: tuple

    @property
    def guaranteed(self) -> int:
        return sum(e.base for e in self.entries if e.provider == CapacityProvider.ON_DEMAND)

    @property
    def uses_spot(self) -> bool:
        return any(e.provider == CapacityProvider.SPOT for e in self.entries)

    def entry_for(self, provider: CapacityProvider) -> Optional[CapacityProviderEntry]:
        return next((e for e in self.entries if e.provider == provider), None)

    def to_list(self) -> list:
        return [e.to_dict() for e in self.entries]


# ── Network Policy ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ServiceDescriptor:
    """Declared network identity of a service.

    allowed_callers names the security groups allowed to reach `port`;
    every name must belong to a descriptor listed earlier.
    """
    name: str
    port: int
    allowed_callers: tuple = ()
    public_ports: tuple = ()


@dataclass(frozen=True)
class IngressRule:
    port: int
    protocol: str = "tcp"
    source_group: Optional[str] = None
    cidr_ipv4: Optional[str] = None
    cidr_ipv6: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"fromPort": self.port, "toPort": self.port, "ipProtocol": self.protocol}
        if self.source_group is not None:
            data["referencedSecurityGroup"] = self.source_group
        if self.cidr_ipv4 is not None:
            data["cidrIpv4"] = self.cidr_ipv4
        if self.cidr_ipv6 is not None:
            data["cidrIpv6"] = self.cidr_ipv6
        return data


ALLOW_ALL_EGRESS = {"cidrIpv4": "0.0.0.0/0", "ipProtocol": "-1"}


@dataclass(frozen=True, eq=False)
class SecurityGroupNode:
    """A built network-policy node.

    Nodes compare by identity: two services allowing the same caller must
    hold the very same node, never an equal copy.
    """
    name: str
    port: int
    allowed_callers: tuple = ()
    public_ports: tuple = ()

    @property
    def ingress(self) -> list:
        rules = [IngressRule(port=self.port, source_group=c.name) for c in self.allowed_callers]
        for p in self.public_ports:
            rules.append(IngressRule(port=p, cidr_ipv4="0.0.0.0/0"))
            rules.append(IngressRule(port=p, cidr_ipv6="::/0"))
        return rules

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "port": self.port,
            "allowedCallers": [c.name for c in self.allowed_callers],
            "ingress": [r.to_dict() for r in self.ingress],
            "egress": [dict(ALLOW_ALL_EGRESS)],
        }


# ── Maintenance ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MaintenanceChallenge:
    """Secret header letting operators bypass the maintenance redirect."""
    header_name: str
    header_secret: str = field(repr=False)

    def to_dict(self, include_secrets: bool = False) -> dict:
        return {
            "headerName": self.header_name,
            "headerSecret": self.header_secret if include_secrets else "***",
        }
