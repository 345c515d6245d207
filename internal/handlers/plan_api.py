"""HTTP handlers for the planning API.

Endpoints:
  GET  /health                                  Liveness
  GET  /api/infra-states                        The infra state activation table
  GET  /api/environments                        Configured environments
  GET  /api/plan/<env>?infraState=<state>       Desired-state plan (secrets redacted)

The infra state falls back to INFRA_STATE when the query parameter is absent.
"""

import logging
import os

from flask import Blueprint, current_app, jsonify, request

from internal.models.errors import (
    ConfigError, InvalidInfraState, MissingSecretError, PlanningError,
)
from internal.planner.assembler import plan_environment
from internal.policy.infra_state import ACCEPTED_STATES, activation_table, parse_infra_state

logger = logging.getLogger(__name__)

plan_bp = Blueprint("plan", __name__)


def _config():
    return current_app.config["CONFIG_STORE"].load()


@plan_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "service": "topology-planner"}), 200


@plan_bp.route("/api/infra-states", methods=["GET"])
def list_infra_states():
    return jsonify({"states": activation_table()}), 200


@plan_bp.route("/api/environments", methods=["GET"])
def list_environments():
    try:
        config = _config()
    except ConfigError as exc:
        return jsonify({"error": str(exc)}), 500
    return jsonify({
        "environments": [
            {"name": e.name, "region": e.region, "subdomain": e.subdomain}
            for e in config.environments
        ],
    }), 200


@plan_bp.route("/api/plan/<env_name>", methods=["GET"])
def get_plan(env_name: str):
    raw_state = request.args.get("infraState") or os.environ.get("INFRA_STATE")
    try:
        state = parse_infra_state(raw_state)
    except InvalidInfraState as exc:
        return jsonify({"error": str(exc), "accepted": list(ACCEPTED_STATES)}), 400

    try:
        config = _config()
    except ConfigError as exc:
        return jsonify({"error": str(exc)}), 500
    if env_name not in config.names():
        return jsonify({
            "error": f"Unknown environment: '{env_name}'",
            "available": config.names(),
        }), 404

    env_config = config.get(env_name)
    secrets = current_app.config["SECRET_PROVIDER"]
    try:
        plan = plan_environment(env_config.environment(state), env_config, secrets)
    except MissingSecretError as exc:
        return jsonify({"error": str(exc), "missing": list(exc.missing)}), 409
    except PlanningError as exc:
        logger.error("Planning failed for '%s': %s", env_name, exc)
        return jsonify({"error": str(exc)}), 500

    return jsonify(plan.to_dict(include_secrets=False)), 200
