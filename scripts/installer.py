"""Command line interface for the edge platform installer."""
from __future__ import annotations

import argparse
import logging
import logging.config
import os
from pathlib import Path
from typing import List, Optional

import yaml

from orch_installer import bootstrap, create_default_context, create_default_state, registry
from orch_installer.config import OrchInstallerConfig, load_config
from orch_installer.core import (
    Action,
    ContinuationPolicy,
    LabelSelector,
    PipelineDriver,
    save_runtime_state,
)
from orch_installer.core.state import StateFileError
from orch_installer.core.utils import installer_version
from orch_installer.settings import Settings


def load_environment() -> None:
    candidates = []
    if env_file := os.getenv("ENV_FILE"):
        candidates.append(Path(env_file))
    candidates.append(Path(".env"))

    for path in candidates:
        if not path.exists():
            continue
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip('"')
                os.environ.setdefault(key, value)


load_environment()

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure logging using YAML/INI files or basic configuration."""

    config_candidates = []
    if config_env := os.getenv("LOGGING_CONFIG"):
        config_candidates.append(Path(config_env))
    config_candidates.extend(
        Path(name) for name in ("logging.yaml", "logging.yml", "logging.ini")
    )

    for config_path in config_candidates:
        if not config_path.exists():
            continue
        suffix = config_path.suffix.lower()
        try:
            if suffix in {".ini", ".cfg"}:
                logging.config.fileConfig(config_path, disable_existing_loggers=False)
            elif suffix in {".yaml", ".yml"}:
                with config_path.open("r", encoding="utf-8") as handle:
                    logging.config.dictConfig(yaml.safe_load(handle))
            else:
                print(
                    f"Skipping unsupported logging config {config_path}. Using default logging configuration."
                )
                continue
            return
        except (OSError, ValueError, TypeError, KeyError, yaml.YAMLError) as exc:
            print(
                f"Failed to load logging config {config_path}: {exc}. Falling back to basic logging."
            )
            break

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _labels(raw: Optional[str], config: OrchInstallerConfig) -> LabelSelector:
    if raw:
        return LabelSelector.from_labels(raw.split(","))
    return LabelSelector.from_labels(config.general.enabled_labels)


def _lifecycle(args: argparse.Namespace) -> int:
    settings = Settings.load()
    if args.keep_generated_files:
        settings.keep_generated_files = True
    settings.ensure_directories()
    state_file = Path(args.state_file) if args.state_file else settings.state_file

    try:
        config = load_config(Path(args.config), action=args.command)
        state = create_default_state(settings, state_file)
        stages = registry.build(args.target, settings, config.action)
    except (FileNotFoundError, ValueError, KeyError, StateFileError) as exc:
        print(f"Error: {exc}")
        return 2

    policy = ContinuationPolicy.for_action(config.action)
    if args.continue_on_error:
        policy = ContinuationPolicy(run_after_failed_prepare=True, continue_after_failed_stage=True)
    driver = PipelineDriver(stages, selector=_labels(args.labels, config), policy=policy)
    try:
        requested = driver.resolve(args.stages or None)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 2

    logger.info(
        "Running %s for target %s (deployment %s), stages %s",
        config.action,
        args.target,
        state.deployment_id,
        requested,
    )
    report = driver.run(create_default_context(settings), config, state, requested)
    try:
        save_runtime_state(state_file, state)
    except StateFileError as exc:
        logger.error("%s", exc)
        return 1

    if report.succeeded:
        print(f"{config.action} completed successfully.")
        return 0
    print(f"{config.action} failed:")
    for line in report.format_failures():
        print(f"- {line}")
    return 1


def command_targets(_: argparse.Namespace) -> int:
    print("Registered targets:")
    for definition in registry.items():
        print(f"- {definition.name}: {definition.description} ({definition.module})")
    return 0


def command_stages(args: argparse.Namespace) -> int:
    settings = Settings.load()
    try:
        stages = registry.build(args.target, settings, Action.parse(args.action))
    except (KeyError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2
    print(f"Stages for {args.target} ({args.action}):")
    for stage in stages:
        names = ", ".join(step.name() for step in getattr(stage, "steps", ()))
        print(f"- {stage.name()}: {names}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provision edge platform infrastructure.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {installer_version()}")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    for action in Action:
        sub = subparsers.add_parser(action.value, help=f"Run the {action.value} lifecycle")
        sub.add_argument("--config", required=True, help="Path to the installer YAML configuration.")
        sub.add_argument("--target", default="aws", help="Deployment target (see 'targets').")
        sub.add_argument("--labels", help="Comma separated step labels to run.")
        sub.add_argument("--state-file", help="Runtime state file to resume from and write to.")
        sub.add_argument(
            "--continue-on-error",
            action="store_true",
            help="Keep running later passes and stages after a failure.",
        )
        sub.add_argument(
            "--keep-generated-files",
            action="store_true",
            help="Keep generated Terraform variable and backend files.",
        )
        sub.add_argument(
            "stages",
            nargs="*",
            help="Optional subset of stages to run, in pipeline order.",
        )
        sub.set_defaults(func=_lifecycle)

    parser_targets = subparsers.add_parser("targets", help="List registered targets")
    parser_targets.set_defaults(func=command_targets)

    parser_stages = subparsers.add_parser("stages", help="List the stages of a target")
    parser_stages.add_argument("--target", default="aws")
    parser_stages.add_argument("--action", default=Action.INSTALL.value)
    parser_stages.set_defaults(func=command_stages)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging()
    bootstrap()
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - entry point for CLI usage
    raise SystemExit(main())
