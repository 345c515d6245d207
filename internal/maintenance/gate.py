"""Maintenance gate: secret-header bypass of the maintenance redirect.

While maintenance is active, ordinary visitors are redirected to the
maintenance page at two gate points:

  - the CDN edge, by a viewer-request function attached to each static site
  - the load balancer, whose routing rules only match requests carrying the
    header (everything else falls through to the default maintenance redirect)

Both gate points receive the same MaintenanceChallenge and look the header
name up case-insensitively (header_matches). The edge compares the value
exactly; load-balancer header conditions compare it ignoring case and treat
`*` and `?` as wildcards, so secrets carrying those characters are rejected.
"""

import json
import logging
import re

from internal.models.errors import ConfigError, MissingSecretError
from internal.models.types import Environment, MaintenanceChallenge
from internal.policy.infra_state import resolve
from internal.secrets.base import MAINTENANCE_HEADER_NAME, MAINTENANCE_HEADER_SECRET

logger = logging.getLogger(__name__)

MAINTENANCE_SITE = "maintenance"
EDGE_FUNCTION_NAME = "maintenance-check"
EDGE_FUNCTION_RUNTIME = "cloudfront-js-2.0"

# RFC 9110 token characters
_HEADER_NAME_RE = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")
# The load balancer treats these as wildcards in header condition values.
_WILDCARDS = ("*", "?")


def maintenance_challenge(env: Environment, secrets) -> "MaintenanceChallenge | None":
    """Return the bypass challenge for an environment, or None outside maintenance.

    Raises:
        MissingSecretError: Maintenance is active and the header name or
            secret is missing or empty.
        ConfigError: The header name is not a valid HTTP token, or the secret
            contains wildcard characters.
    """
    if not resolve(env.infra_state).maintenance_active:
        return None

    name = secrets.get(MAINTENANCE_HEADER_NAME)
    secret = secrets.get(MAINTENANCE_HEADER_SECRET)
    missing = []
    if not name:
        missing.append(MAINTENANCE_HEADER_NAME)
    if not secret:
        missing.append(MAINTENANCE_HEADER_SECRET)
    if missing:
        logger.error(
            "Environment '%s' is in maintenance but the bypass header is incomplete (missing %s)",
            env.name, ", ".join(missing),
        )
        raise MissingSecretError(missing)

    if not _HEADER_NAME_RE.match(name):
        raise ConfigError(f"Maintenance header name {name!r} is not a valid HTTP header name")
    if any(w in secret for w in _WILDCARDS):
        raise ConfigError("Maintenance header secret must not contain '*' or '?'")
    return MaintenanceChallenge(header_name=name, header_secret=secret)


def header_matches(challenge: MaintenanceChallenge, headers, case_sensitive: bool = True) -> bool:
    """True if any header named like the bypass header carries the secret.

    The edge function compares the value exactly. Load-balancer header
    conditions ignore case, which callers model with case_sensitive=False.
    """
    wanted = challenge.header_name.lower()
    secret = challenge.header_secret
    for key, value in headers.items():
        if key.lower() != wanted or not isinstance(value, str):
            continue
        if value == secret or (not case_sensitive and value.lower() == secret.lower()):
            return True
    return False


def maintenance_url(env: Environment) -> str:
    return f"https://{env.subdomain_for(MAINTENANCE_SITE)}"


# ── Edge (CDN) gate ──────────────────────────────────────────────────────────

_GATED_FUNCTION = """function handler(event) {
  const headers = event.request.headers;
  const headerName = %(name)s;
  const headerSecret = %(secret)s;
  if (
    headers[headerName] &&
    headers[headerName].value === headerSecret
  ) {
    return event.request;
  }

  return {
    statusCode: 302,
    statusDescription: 'Found',
    headers: {
      'location': {value: %(location)s},
    },
  };
}"""

_PASS_THROUGH_FUNCTION = """function handler(event) {
  return event.request;
}"""


def render_edge_function(env: Environment, challenge) -> dict:
    """Render the viewer-request function for the environment's static sites.

    CloudFront hands the function lowercased header names, so the name is
    lowercased here; the secret is embedded verbatim.
    """
    if challenge is None:
        code = _PASS_THROUGH_FUNCTION
    else:
        code = _GATED_FUNCTION % {
            "name": json.dumps(challenge.header_name.lower()),
            "secret": json.dumps(challenge.header_secret),
            "location": json.dumps(maintenance_url(env)),
        }
    return {"name": EDGE_FUNCTION_NAME, "runtime": EDGE_FUNCTION_RUNTIME, "code": code}


def edge_function_association(challenge) -> "str | None":
    """Event type to attach the edge function to; None detaches it."""
    return "viewer-request" if challenge is not None else None


def simulate_edge_request(env: Environment, challenge, headers) -> dict:
    """Decision the edge function takes for a request with `headers`."""
    if challenge is None or header_matches(challenge, headers):
        return {"action": "pass"}
    return {"action": "redirect", "statusCode": 302, "location": maintenance_url(env)}


# ── Load-balancer gate ───────────────────────────────────────────────────────

def maintenance_rule_conditions(challenge) -> list:
    """Extra conditions appended to every normal routing rule."""
    if challenge is None:
        return []
    return [{
        "httpHeader": {
            "httpHeaderName": challenge.header_name,
            "values": [challenge.header_secret],
        }
    }]
