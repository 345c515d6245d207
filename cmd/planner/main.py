from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(REPO_ROOT))

from flask import Flask

from internal.config.store import ConfigStore
from internal.handlers.plan_api import plan_bp
from internal.models.errors import PlanningError
from internal.planner.assembler import plan_environment
from internal.policy.infra_state import activation_table, parse_infra_state
from internal.secrets.factory import get_secret_provider

logger = logging.getLogger("planner")

DEFAULT_CONFIG = REPO_ROOT / "config" / "environments.yaml"


def _config_store(path=None) -> ConfigStore:
    return ConfigStore(path or os.environ.get("TOPOLOGY_CONFIG_PATH") or str(DEFAULT_CONFIG))


def create_app(config_store: ConfigStore | None = None, secret_provider=None) -> Flask:
    app = Flask(__name__)
    app.config["CONFIG_STORE"] = config_store or _config_store()
    app.config["SECRET_PROVIDER"] = secret_provider or get_secret_provider()
    app.register_blueprint(plan_bp)
    return app


def cmd_plan(args) -> int:
    # Validate the state before touching configuration or secrets.
    state = parse_infra_state(args.infra_state or os.environ.get("INFRA_STATE"))
    config = _config_store(args.config).load()
    env_config = config.get(args.environment)
    plan = plan_environment(env_config.environment(state), env_config, get_secret_provider())
    print(json.dumps(plan.to_dict(include_secrets=args.include_secrets), indent=2, sort_keys=True))
    return 0


def cmd_table(args) -> int:
    print(json.dumps(activation_table(), indent=2))
    return 0


def cmd_serve(args) -> int:
    port = int(os.getenv("PORT", "8080"))
    app = create_app(_config_store(args.config))
    logger.info("Topology planner listening on http://0.0.0.0:%s", port)
    app.run(host="0.0.0.0", port=port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="planner", description="Deployment topology planner")
    parser.add_argument("--config", help="Path to environments.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Print the desired-state plan of an environment")
    plan.add_argument("environment")
    plan.add_argument("--infra-state", help="Overrides INFRA_STATE")
    plan.add_argument("--include-secrets", action="store_true",
                      help="Keep the maintenance secret in the output")
    plan.set_defaults(func=cmd_plan)

    table = sub.add_parser("table", help="Print the infra state activation table")
    table.set_defaults(func=cmd_table)

    serve = sub.add_parser("serve", help="Run the planning API")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except PlanningError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
