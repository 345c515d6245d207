"""Tests for the maintenance gate."""

import os
import sys

import pytest

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from internal.maintenance.gate import (
    edge_function_association, header_matches, maintenance_challenge,
    maintenance_rule_conditions, render_edge_function, simulate_edge_request,
)
from internal.models.errors import ConfigError, MissingSecretError
from internal.models.types import Environment, InfraState, MaintenanceChallenge
from internal.secrets.base import MAINTENANCE_HEADER_NAME, MAINTENANCE_HEADER_SECRET
from internal.secrets.providers.static import StaticSecretProvider


def _env(state=InfraState.RESTRICTED, subdomain="dev") -> Environment:
    return Environment(name="dev", region="eu-central-1", infra_state=state, subdomain=subdomain)


def _secrets(name="X-Maintenance-Bypass", secret="s3cr3t-Value") -> StaticSecretProvider:
    values = {}
    if name is not None:
        values[MAINTENANCE_HEADER_NAME] = name
    if secret is not None:
        values[MAINTENANCE_HEADER_SECRET] = secret
    return StaticSecretProvider(values)


CHALLENGE = MaintenanceChallenge(header_name="X-Maintenance-Bypass", header_secret="s3cr3t-Value")


# ── Challenge ────────────────────────────────────────────────────────────────

def test_no_challenge_when_running():
    assert maintenance_challenge(_env(InfraState.RUNNING), _secrets()) is None


def test_no_challenge_when_running_even_without_secrets():
    assert maintenance_challenge(_env(InfraState.RUNNING), StaticSecretProvider()) is None


@pytest.mark.parametrize("state", [InfraState.RESTRICTED, InfraState.DB_ONLY, InfraState.STOPPED])
def test_challenge_in_maintenance_states(state):
    challenge = maintenance_challenge(_env(state), _secrets())
    assert challenge == CHALLENGE
    assert challenge.header_name and challenge.header_secret


def test_missing_secret_value():
    with pytest.raises(MissingSecretError) as exc:
        maintenance_challenge(_env(), _secrets(secret=None))
    assert exc.value.missing == (MAINTENANCE_HEADER_SECRET,)


def test_missing_header_name():
    with pytest.raises(MissingSecretError) as exc:
        maintenance_challenge(_env(), _secrets(name=None))
    assert exc.value.missing == (MAINTENANCE_HEADER_NAME,)


def test_empty_values_count_as_missing():
    with pytest.raises(MissingSecretError) as exc:
        maintenance_challenge(_env(), _secrets(name="", secret=""))
    assert set(exc.value.missing) == {MAINTENANCE_HEADER_NAME, MAINTENANCE_HEADER_SECRET}


def test_secret_not_in_error_message():
    with pytest.raises(MissingSecretError) as exc:
        maintenance_challenge(_env(), _secrets(name=None))
    assert "s3cr3t-Value" not in str(exc.value)


def test_invalid_header_name_rejected():
    with pytest.raises(ConfigError):
        maintenance_challenge(_env(), _secrets(name="bad header"))


@pytest.mark.parametrize("secret", ["abc*", "a?c"])
def test_wildcard_secret_rejected(secret):
    with pytest.raises(ConfigError):
        maintenance_challenge(_env(), _secrets(secret=secret))


def test_challenge_repr_hides_secret():
    assert "s3cr3t-Value" not in repr(CHALLENGE)
    assert CHALLENGE.to_dict()["headerSecret"] == "***"
    assert CHALLENGE.to_dict(include_secrets=True)["headerSecret"] == "s3cr3t-Value"


# ── Comparison ───────────────────────────────────────────────────────────────

def test_header_name_is_case_insensitive():
    assert header_matches(CHALLENGE, {"x-maintenance-bypass": "s3cr3t-Value"})
    assert header_matches(CHALLENGE, {"X-MAINTENANCE-BYPASS": "s3cr3t-Value"})


def test_header_value_is_case_sensitive():
    assert not header_matches(CHALLENGE, {"X-Maintenance-Bypass": "S3CR3T-VALUE"})


def test_header_value_must_match_exactly():
    assert not header_matches(CHALLENGE, {"X-Maintenance-Bypass": "s3cr3t-Value "})
    assert not header_matches(CHALLENGE, {"X-Maintenance-Bypass": "s3cr3t"})


def test_missing_header_does_not_match():
    assert not header_matches(CHALLENGE, {"Host": "api.dev.graasp.org"})


def test_every_header_with_the_name_is_checked():
    assert header_matches(CHALLENGE, {"X-MAINTENANCE-BYPASS": "nope", "x-maintenance-bypass": "s3cr3t-Value"})
    assert not header_matches(CHALLENGE, {"X-MAINTENANCE-BYPASS": "nope", "x-maintenance-bypass": "no"})


def test_case_insensitive_value_comparison():
    assert header_matches(CHALLENGE, {"X-Maintenance-Bypass": "S3CR3T-VALUE"}, case_sensitive=False)
    assert not header_matches(CHALLENGE, {"X-Maintenance-Bypass": "s3cr3t"}, case_sensitive=False)


# ── Edge gate ────────────────────────────────────────────────────────────────

def test_edge_function_embeds_lowercased_name_and_exact_secret():
    fn = render_edge_function(_env(), CHALLENGE)
    assert fn["name"] == "maintenance-check"
    assert fn["runtime"] == "cloudfront-js-2.0"
    assert '"x-maintenance-bypass"' in fn["code"]
    assert '"s3cr3t-Value"' in fn["code"]
    assert '"https://maintenance.dev.graasp.org"' in fn["code"]
    assert "=== headerSecret" in fn["code"]


def test_edge_function_escapes_quotes_in_secret():
    challenge = MaintenanceChallenge("X-Bypass", "it's\"quoted")
    fn = render_edge_function(_env(), challenge)
    assert '"it\'s\\"quoted"' in fn["code"]


def test_edge_function_pass_through_without_challenge():
    fn = render_edge_function(_env(InfraState.RUNNING), None)
    assert "return event.request;" in fn["code"]
    assert "302" not in fn["code"]
    assert edge_function_association(None) is None


def test_edge_function_attached_to_viewer_request():
    assert edge_function_association(CHALLENGE) == "viewer-request"


def test_edge_simulation_redirects_without_header():
    decision = simulate_edge_request(_env(), CHALLENGE, {})
    assert decision == {
        "action": "redirect",
        "statusCode": 302,
        "location": "https://maintenance.dev.graasp.org",
    }


def test_edge_simulation_passes_with_header():
    assert simulate_edge_request(_env(), CHALLENGE, {"x-maintenance-bypass": "s3cr3t-Value"}) == {"action": "pass"}


def test_edge_simulation_passes_everything_outside_maintenance():
    assert simulate_edge_request(_env(InfraState.RUNNING), None, {}) == {"action": "pass"}


def test_apex_environment_maintenance_url():
    decision = simulate_edge_request(_env(subdomain=None), CHALLENGE, {})
    assert decision["location"] == "https://maintenance.graasp.org"


# ── Load-balancer gate ───────────────────────────────────────────────────────

def test_rule_conditions_carry_the_same_pair():
    assert maintenance_rule_conditions(CHALLENGE) == [{
        "httpHeader": {"httpHeaderName": "X-Maintenance-Bypass", "values": ["s3cr3t-Value"]},
    }]


def test_no_rule_conditions_outside_maintenance():
    assert maintenance_rule_conditions(None) == []
