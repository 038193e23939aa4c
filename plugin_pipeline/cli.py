"""
Command-line interface for the Plugin Pipeline package.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Tuple

from .config import ConfigError, PipelineConfig, create_default_config_file, load_config
from .observability import LogLevel, PipelineFormatter, configure_logging
from .pipeline import PluginPipeline
from .plugins.base import OptionField, OptionType
from .queue import PluginQueue
from .storage import StateStorage, StorageError, create_storage


logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler = logging.StreamHandler()
    handler.setFormatter(PipelineFormatter())
    logging.basicConfig(level=level, handlers=[handler])


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="plugin-pipeline",
        description="Plugin Pipeline - run text through chains of text plugins",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List plugins and their activation state
  plugin-pipeline plugins

  # Activate plugins and configure one
  plugin-pipeline enable trim_whitespace find_replace
  plugin-pipeline configure find_replace find=colour replace=color

  # Run the active plugins over a message
  plugin-pipeline run "The colour   of   magic"

  # Run an explicit chain, stopping at the first failure
  plugin-pipeline queue "hello" --plugins trim_whitespace upper_case

  # Inspect recent executions
  plugin-pipeline history --json
        """
    )

    parser.add_argument(
        "--config",
        help="Path to a .plugin-pipeline.yml configuration file"
    )
    parser.add_argument(
        "--state",
        help="Path to the state file (overrides the configured storage path)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("plugins", help="List registered plugins")

    enable_parser = subparsers.add_parser("enable", help="Activate plugins")
    enable_parser.add_argument("plugin_ids", nargs="+", help="Plugin ids")

    disable_parser = subparsers.add_parser("disable", help="Deactivate plugins")
    disable_parser.add_argument("plugin_ids", nargs="+", help="Plugin ids")

    configure_parser = subparsers.add_parser("configure", help="Set plugin options")
    configure_parser.add_argument("plugin_id", help="Plugin id")
    configure_parser.add_argument(
        "settings",
        nargs="*",
        help="Options as key=value pairs"
    )
    configure_parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace all stored options instead of merging"
    )

    subparsers.add_parser("reset", help="Deactivate all plugins and restore default options")

    run_parser = subparsers.add_parser("run", help="Apply plugins to a message")
    run_parser.add_argument("text", nargs="?", help="Message text (reads stdin if omitted or '-')")
    run_parser.add_argument(
        "--plugins",
        nargs="+",
        help="Apply these plugins in order instead of the active ones"
    )
    run_parser.add_argument(
        "--option",
        action="append",
        default=[],
        help="Per-run option as plugin_id.key=value (repeatable)"
    )

    queue_parser = subparsers.add_parser("queue", help="Run an explicit fail-closed chain")
    queue_parser.add_argument("text", nargs="?", help="Message text (reads stdin if omitted or '-')")
    queue_parser.add_argument(
        "--plugins",
        nargs="+",
        required=True,
        help="Plugin ids in execution order"
    )

    history_parser = subparsers.add_parser("history", help="Show recent executions")
    history_parser.add_argument("--json", action="store_true", help="Output JSON")
    history_parser.add_argument("--clear", action="store_true", help="Clear the history")

    init_parser = subparsers.add_parser("init", help="Create a default configuration file")
    init_parser.add_argument("path", nargs="?", help="Where to write the file")

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)

    if args.command == "init":
        handle_init(args)
        return

    try:
        config = load_config(config_path=args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if config.logging.json_output:
        level = LogLevel.DEBUG if args.verbose else LogLevel(config.logging.level)
        configure_logging(level, json_output=True)

    pipeline, storage = open_pipeline(config, args.state)

    handlers = {
        "plugins": handle_plugins,
        "enable": handle_enable,
        "disable": handle_disable,
        "configure": handle_configure,
        "reset": handle_reset,
        "run": handle_run,
        "queue": handle_queue,
        "history": handle_history,
    }
    exit_code = handlers[args.command](pipeline, args)

    try:
        pipeline.save_state(storage)
    except (OSError, StorageError) as e:
        print(f"Error saving state: {e}", file=sys.stderr)
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


def open_pipeline(
    config: PipelineConfig,
    state_path: Optional[str] = None,
) -> Tuple[PluginPipeline, StateStorage]:
    """Build the pipeline and restore its saved state."""
    pipeline = PluginPipeline.from_config(config)
    try:
        storage = create_storage(config.storage.backend, state_path or config.storage.path)
        dropped = pipeline.load_state(storage)
    except (StorageError, ValueError) as e:
        print(f"Error loading state: {e}", file=sys.stderr)
        sys.exit(1)

    if dropped:
        logger.info(f"Forgot state for unknown plugins: {', '.join(dropped)}")
    return pipeline, storage


def read_text(text: Optional[str]) -> str:
    """Return the given text, or stdin when it is missing or '-'."""
    if text is None or text == "-":
        return sys.stdin.read()
    return text


def coerce_option(option: Optional[OptionField], raw: str) -> Any:
    """
    Convert a command-line string to the option's declared type.

    Raises:
        ValueError: If the value does not fit the declared type.
    """
    if option is None or option.type == OptionType.TEXT:
        return raw
    if option.type == OptionType.BOOLEAN:
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"'{raw}' is not a boolean for option {option.id}")
    if option.type == OptionType.NUMBER:
        number = float(raw)
        return int(number) if number.is_integer() and "." not in raw else number
    if option.choices is not None and raw not in option.choices:
        raise ValueError(f"'{raw}' is not one of {option.choices} for option {option.id}")
    return raw


def parse_settings(pipeline: PluginPipeline, plugin_id: str, settings: List[str]) -> Dict[str, Any]:
    """Parse key=value pairs for a plugin, coercing by its options schema."""
    plugin = pipeline.registry.get(plugin_id)
    schema = {option.id: option for option in plugin.options_schema} if plugin else {}

    parsed = {}
    for setting in settings:
        if "=" not in setting:
            raise ValueError(f"Expected key=value, got '{setting}'")
        key, raw = setting.split("=", 1)
        parsed[key] = coerce_option(schema.get(key), raw)
    return parsed


def handle_init(args):
    """Handle the init command."""
    path = create_default_config_file(args.path)
    print(f"Created {path}")


def handle_plugins(pipeline: PluginPipeline, args):
    """Handle the plugins command."""
    plugins = pipeline.registry.all()
    if not plugins:
        print("No plugins registered.")
        return

    print("Registered plugins:")
    for plugin in plugins:
        marker = "✓" if pipeline.store.is_active(plugin.id) else "✗"
        print(f"  [{marker}] {plugin.id} (v{plugin.version}) - {plugin.description}")
        options = pipeline.store.resolve_options(plugin.id)
        for option in plugin.options_schema:
            print(f"        {option.id} ({option.type.value}) = {options.get(option.id)!r}")


def handle_enable(pipeline: PluginPipeline, args):
    """Handle the enable command."""
    for plugin_id in args.plugin_ids:
        if plugin_id not in pipeline.registry:
            print(f"Warning: '{plugin_id}' is not a registered plugin", file=sys.stderr)
        pipeline.store.toggle(plugin_id, True)
    print(f"Active plugins: {', '.join(pipeline.store.list_active()) or '(none)'}")


def handle_disable(pipeline: PluginPipeline, args):
    """Handle the disable command."""
    for plugin_id in args.plugin_ids:
        pipeline.store.toggle(plugin_id, False)
    print(f"Active plugins: {', '.join(pipeline.store.list_active()) or '(none)'}")


def handle_configure(pipeline: PluginPipeline, args):
    """Handle the configure command."""
    if args.plugin_id not in pipeline.registry:
        print(f"Error: Unknown plugin '{args.plugin_id}'", file=sys.stderr)
        sys.exit(1)

    try:
        changes = parse_settings(pipeline, args.plugin_id, args.settings)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.replace:
        options = changes
    else:
        options = {**pipeline.store.resolve_options(args.plugin_id), **changes}
    pipeline.store.set_options(args.plugin_id, options)

    print(json.dumps(pipeline.store.resolve_options(args.plugin_id), indent=2, default=str))


def handle_reset(pipeline: PluginPipeline, args):
    """Handle the reset command."""
    pipeline.store.reset()
    print("All plugins deactivated and options restored to defaults.")


def handle_run(pipeline: PluginPipeline, args):
    """Handle the run command."""
    text = read_text(args.text)

    overrides: Dict[str, Dict[str, Any]] = {}
    try:
        for entry in args.option:
            target, _, setting = entry.partition(".")
            if not setting:
                raise ValueError(f"Expected plugin_id.key=value, got '{entry}'")
            overrides.setdefault(target, {}).update(parse_settings(pipeline, target, [setting]))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.plugins:
        output = asyncio.run(
            pipeline.process_with_specific_plugins(text, args.plugins, overrides)
        )
    else:
        if overrides:
            print("Error: --option requires --plugins", file=sys.stderr)
            sys.exit(1)
        output = asyncio.run(pipeline.process_message(text))

    print(output)


def handle_queue(pipeline: PluginPipeline, args) -> int:
    """Handle the queue command. Returns 1 if the chain stopped on a failure."""
    text = read_text(args.text)
    pipeline.queue = PluginQueue(args.plugins)

    results = asyncio.run(pipeline.execute_queue(text))

    print(json.dumps([result.to_dict() for result in results], indent=2))
    if any(not result.success for result in results):
        failed = results[-1]
        print(f"Queue stopped at '{failed.plugin_id}': {failed.error}", file=sys.stderr)
        return 1
    return 0


def handle_history(pipeline: PluginPipeline, args):
    """Handle the history command."""
    if args.clear:
        pipeline.history.clear()
        print("History cleared.")
        return

    entries = pipeline.history.list()
    if args.json:
        print(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return

    if not entries:
        print("No executions recorded.")
        return

    for entry in entries:
        status = "ok" if entry.success else f"failed: {entry.error}"
        preview = entry.output[:60].replace('\n', ' ')
        print(
            f"{entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  {entry.plugin_id:<18} "
            f"{entry.execution_time_ms:8.1f} ms  {status}  {preview!r}"
        )


if __name__ == "__main__":
    main()
