"""
Model Kombat - LLM Configuration Command Line
=============================================

Entry point for managing the OpenRouter configuration outside the web UI.

Examples:
    modelkombat set-key sk-or-v1-...
    modelkombat sync --force
    modelkombat models --flagship --group
    modelkombat enable anthropic/claude-3.5-sonnet
    modelkombat rounds 5
    modelkombat plan
    modelkombat --account USER_ID show

Without ``--account`` the configuration lives in the local JSON file; with it,
in the user's Firestore document. ``--storage hybrid`` keeps a local copy and
falls back to it when Firestore is unreachable.
"""

import argparse
import logging
import os
import sys

from modelkombat.core import config
from modelkombat.core.errors import CredentialError, ModelKombatError, ValidationError
from modelkombat.core.model_selection import (
    get_flagship_models,
    group_models_by_provider,
    is_flagship_model,
    plan_rounds,
)
from modelkombat.core.refinement import run_refinement
from modelkombat.core.session import ConfigSession
from modelkombat.utils.config_manager import LocalConfigBackend
from modelkombat.utils.logger import setup_logging, shutdown_logging
from modelkombat.utils.notifications import CallbackNotifier


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="modelkombat", description="Manage Model Kombat LLM configuration")
    parser.add_argument("--account", metavar="USER_ID", help="Use the Firestore configuration of this user")
    parser.add_argument("--storage", choices=("firestore", "hybrid"), default="firestore",
                        help="With --account: Firestore only, or Firestore with the local file as fallback")
    parser.add_argument("--config-path", help="Local configuration file (local and hybrid storage)")
    parser.add_argument("--auto-flagships", action="store_true", help="Enable flagship models found by a catalog sync")
    parser.add_argument("--log-dir", help="Directory for the log file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("show", help="Print the current configuration")

    p = sub.add_parser("set-key", help="Verify and save an OpenRouter API key")
    p.add_argument("api_key", nargs="?", help="API key (defaults to $OPENROUTER_API_KEY)")

    sub.add_parser("test", help="Test the saved API key")

    p = sub.add_parser("sync", help="Refresh the model catalog")
    p.add_argument("--force", action="store_true", help="Ignore the cached catalog")

    p = sub.add_parser("models", help="List catalog models")
    p.add_argument("--flagship", action="store_true", help="Only flagship models")
    p.add_argument("--group", action="store_true", help="Group by provider")

    p = sub.add_parser("enable", help="Enable a model for refinement rounds")
    p.add_argument("model_id")
    p = sub.add_parser("disable", help="Disable a model")
    p.add_argument("model_id")

    p = sub.add_parser("refiner", help="Set the default refiner model")
    p.add_argument("model_id")
    p = sub.add_parser("judge", help="Set the default judge model")
    p.add_argument("model_id")

    p = sub.add_parser("rounds", help="Set the default number of refinement rounds (1-10)")
    p.add_argument("rounds", type=int)

    p = sub.add_parser("plan", help="Show which model runs each refinement round")
    p.add_argument("--rounds", type=int, help="Number of rounds (defaults to the configured value)")

    p = sub.add_parser("refine", help="Run an adversarial refinement of a prompt")
    p.add_argument("question")
    p.add_argument("--rounds", type=int, help="Number of rounds (defaults to the configured value)")

    sub.add_parser("clear", help="Forget the API key and reset the configuration")
    return parser


def build_session(args) -> ConfigSession:
    notifier = CallbackNotifier()
    notifier.subscribe(lambda n: print(f"{'!' if n.is_error else '*'} {n.title}: {n.description}"))

    if args.account:
        from modelkombat.integrations.firestore_store import FirestoreConfigBackend
        backend = FirestoreConfigBackend(user_provider=lambda: args.account)
        if args.storage == "hybrid":
            from modelkombat.integrations.hybrid_store import HybridConfigBackend
            backend = HybridConfigBackend(backend, LocalConfigBackend(path=args.config_path))
    else:
        backend = LocalConfigBackend(path=args.config_path)

    return ConfigSession(backend, notifier=notifier, auto_enable_flagships=args.auto_flagships)


def _print_config(session: ConfigSession):
    cfg = session.config
    if cfg is None:
        print("No configuration (not signed in)")
        return
    print(f"User:              {cfg.user_id}")
    print(f"Storage:           {session.storage_mode}")
    print(f"API key:           {'configured' if cfg.has_api_key else 'not configured'}")
    print(f"Default refiner:   {cfg.default_refiner_id or '-'}")
    print(f"Default judge:     {cfg.default_judge_id or '-'}")
    print(f"Refinement rounds: {cfg.default_refinement_rounds}")
    print(f"Last catalog sync: {cfg.last_catalog_sync.isoformat() if cfg.last_catalog_sync else 'never'}")
    print(f"Enabled models ({len(cfg.enabled_model_ids)}):")
    for model_id in cfg.enabled_model_ids:
        print(f"  {model_id}{' *' if is_flagship_model(model_id) else ''}")


def _rounds_arg(session: ConfigSession, args) -> int:
    return args.rounds if args.rounds is not None else session.config.default_refinement_rounds


def run_command(session: ConfigSession, args) -> int:
    command = args.command

    if command == "show":
        _print_config(session)
    elif command == "set-key":
        api_key = args.api_key or os.environ.get("OPENROUTER_API_KEY", "")
        session.save_credential(api_key)
    elif command == "test":
        return 0 if session.verify() else 1
    elif command == "sync":
        return 0 if session.sync_catalog(force_refresh=args.force) else 1
    elif command == "models":
        models = get_flagship_models(session.models) if args.flagship else session.models
        if args.group:
            for provider, entries in group_models_by_provider(models).items():
                print(f"{provider} ({len(entries)})")
                for m in entries:
                    print(f"  {m.id}  {m.display_name}")
        else:
            for m in models:
                print(f"{m.id}{' *' if is_flagship_model(m.id) else ''}  {m.display_name}")
    elif command in ("enable", "disable"):
        session.toggle_model(args.model_id, command == "enable")
    elif command == "refiner":
        session.set_default_refiner(args.model_id)
    elif command == "judge":
        session.set_default_judge(args.model_id)
    elif command == "rounds":
        session.set_default_rounds(args.rounds)
    elif command == "plan":
        rounds = _rounds_arg(session, args)
        if not (config.MIN_REFINEMENT_ROUNDS <= rounds <= config.MAX_REFINEMENT_ROUNDS):
            raise ValidationError(
                f"Refinement rounds must be between {config.MIN_REFINEMENT_ROUNDS} and {config.MAX_REFINEMENT_ROUNDS}."
            )
        for i, model_id in enumerate(plan_rounds(session.config.enabled_model_ids, rounds)):
            print(f"Round {i + 1}: {model_id}")
    elif command == "refine":
        if not session.client.is_initialized():
            raise CredentialError("No API key configured. Run 'modelkombat set-key' first.")
        rounds = _rounds_arg(session, args)
        result = run_refinement(session.client, args.question, session.config.enabled_model_ids, rounds)
        for r in result.rounds:
            print(f"--- Round {r.round_number} ({r.model_id}) ---")
            print(r.refined_answer)
    elif command == "clear":
        session.clear_config()
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING, log_dir=args.log_dir)
    logger = logging.getLogger(__name__)

    try:
        session = build_session(args)
        session.load_config()
        if session.config is None:
            print("Not signed in", file=sys.stderr)
            return 1
        return run_command(session, args)
    except ModelKombatError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
