"""Service topology catalog: every logical service of the deployment.

The catalog is environment-independent. Sizes, counts and spot preferences
live in the per-environment configuration (config/environments.yaml) and
are joined with these definitions by the assembler.

Security groups are listed in dependency order: the public load balancer
first, then services reached from it, then services reached only from
those, and the database last.
"""

from dataclasses import dataclass
from typing import Optional

from internal.models.types import ActivationClass, ServiceDescriptor


BACKEND_PORT = 3111
LIBRARY_PORT = 3005
ETHERPAD_PORT = 9001
MEILISEARCH_PORT = 7700
IFRAMELY_PORT = 8061
REDIS_PORT = 6379
UMAMI_PORT = 3000
POSTGRES_PORT = 5432
SSH_PORT = 22

LOAD_BALANCER = "load-balancer"
GATEKEEPER = "gatekeeper"
BACKEND = "graasp-backend"
DATABASE = "database"


@dataclass(frozen=True)
class LoadBalancerExposure:
    """How a service is published behind the load balancer."""
    priority: int
    subdomain: str
    port: int
    health_check_path: str


@dataclass(frozen=True)
class AutoscalingPolicy:
    metric: str
    target_value: int
    scale_in_cooldown: int
    scale_out_cooldown: int
    max_capacity: int = 8


@dataclass(frozen=True)
class ServiceDefinition:
    """A compute-bearing logical service."""
    name: str
    activation_class: ActivationClass
    container_port: int
    security_group: str
    load_balancer: Optional[LoadBalancerExposure] = None
    internal_alias: Optional[str] = None
    autoscaling: Optional[AutoscalingPolicy] = None
    one_off: bool = False  # runs to completion instead of staying up


@dataclass(frozen=True)
class BaremetalDefinition:
    """A plain VM whose instance state follows its activation class."""
    name: str
    activation_class: ActivationClass
    security_group: str


@dataclass(frozen=True)
class WebsiteDefinition:
    name: str
    apex_domain: bool = False


# ── Security Groups ──────────────────────────────────────────────────────────

SECURITY_GROUPS = (
    ServiceDescriptor(LOAD_BALANCER, 443, public_ports=(80, 443)),
    ServiceDescriptor(GATEKEEPER, SSH_PORT, public_ports=(SSH_PORT,)),
    ServiceDescriptor(BACKEND, BACKEND_PORT, allowed_callers=(LOAD_BALANCER,)),
    ServiceDescriptor("graasp-library", LIBRARY_PORT, allowed_callers=(LOAD_BALANCER,)),
    ServiceDescriptor("etherpad", ETHERPAD_PORT, allowed_callers=(LOAD_BALANCER,)),
    ServiceDescriptor("umami", UMAMI_PORT, allowed_callers=(LOAD_BALANCER,)),
    ServiceDescriptor("meilisearch", MEILISEARCH_PORT, allowed_callers=(BACKEND, GATEKEEPER)),
    ServiceDescriptor("iframely", IFRAMELY_PORT, allowed_callers=(BACKEND,)),
    ServiceDescriptor("redis", REDIS_PORT, allowed_callers=(BACKEND,)),
    ServiceDescriptor(
        DATABASE, POSTGRES_PORT,
        allowed_callers=(BACKEND, "umami", "etherpad", GATEKEEPER),
    ),
)


# ── Compute Services ─────────────────────────────────────────────────────────

SERVICES = (
    ServiceDefinition(
        name="graasp",
        activation_class=ActivationClass.CORE,
        container_port=BACKEND_PORT,
        security_group=BACKEND,
        load_balancer=LoadBalancerExposure(1, "api", 80, "/health"),
        autoscaling=AutoscalingPolicy("ECSServiceAverageCPUUtilization", 70, 30, 300),
    ),
    ServiceDefinition(
        name="graasp-library",
        activation_class=ActivationClass.CORE,
        container_port=LIBRARY_PORT,
        security_group="graasp-library",
        load_balancer=LoadBalancerExposure(2, "library", 80, "/api/status"),
        autoscaling=AutoscalingPolicy("ECSServiceAverageMemoryUtilization", 80, 10, 300),
    ),
    ServiceDefinition(
        name="etherpad",
        activation_class=ActivationClass.AUXILIARY,
        container_port=ETHERPAD_PORT,
        security_group="etherpad",
        load_balancer=LoadBalancerExposure(3, "etherpad", 443, "/"),
    ),
    ServiceDefinition(
        name="umami",
        activation_class=ActivationClass.AUXILIARY,
        container_port=UMAMI_PORT,
        security_group="umami",
        load_balancer=LoadBalancerExposure(4, "umami", 80, "/api/heartbeat"),
        internal_alias="umami",
    ),
    ServiceDefinition(
        name="meilisearch",
        activation_class=ActivationClass.CACHE_AND_SEARCH,
        container_port=MEILISEARCH_PORT,
        security_group="meilisearch",
        internal_alias="graasp-meilisearch",
    ),
    ServiceDefinition(
        name="iframely",
        activation_class=ActivationClass.AUXILIARY,
        container_port=IFRAMELY_PORT,
        security_group="iframely",
        internal_alias="graasp-iframely",
    ),
    ServiceDefinition(
        name="redis",
        activation_class=ActivationClass.CACHE_AND_SEARCH,
        container_port=REDIS_PORT,
        security_group="redis",
        internal_alias="graasp-redis",
    ),
    ServiceDefinition(
        name="graasp-migrate",
        activation_class=ActivationClass.MIGRATION,
        container_port=BACKEND_PORT,
        security_group=BACKEND,
        one_off=True,
    ),
)

BAREMETAL = (
    BaremetalDefinition(GATEKEEPER, ActivationClass.AUXILIARY, GATEKEEPER),
)


# ── Static Sites ─────────────────────────────────────────────────────────────

WEBSITES = (
    WebsiteDefinition("analytics"),
    WebsiteDefinition("apps"),
    WebsiteDefinition("assets"),
    WebsiteDefinition("builder"),
    WebsiteDefinition("h5p"),
    WebsiteDefinition("maintenance"),
    WebsiteDefinition("map"),
    WebsiteDefinition("client", apex_domain=True),
)


# ── Host Redirects ───────────────────────────────────────────────────────────
# (name, priority, origin prefix, target prefix or "" for apex, path, query, status)

HOST_REDIRECTS = (
    ("shortener", 50, "go", "api", "/items/short-links/#{path}", None, "HTTP_302"),
    ("account", 51, "account", "", "/account/#{path}", "#{query}", "HTTP_301"),
    ("auth", 52, "auth", "", "/auth/#{path}", "#{query}", "HTTP_301"),
    ("player", 53, "player", "", "/player/#{path}", "#{query}", "HTTP_301"),
    ("builder", 54, "builder", "", "/builder/#{path}", "#{query}", "HTTP_301"),
    ("analytics", 55, "analytics", "", "/analytics/#{path}", "#{query}", "HTTP_301"),
    ("association", 56, "association", "", "/about-us", "#{query}", "HTTP_301"),
)


def compute_service_names() -> list:
    return [s.name for s in SERVICES]
