"""
Command-line interface for i18n-consensus.

Provides CLI commands for translating and checking i18next catalogs:
- translate: Translate the source catalog into every target language
- check: Self-check a source catalog, or check a translation against it
- features: Print the structural fingerprint of a catalog as JSON
- config: Show the effective configuration

Usage:
    i18n-consensus translate [--language fr] [--candidates 3] [--judges 3]
    i18n-consensus check public/locales/translation.json [public/locales/fr/translation.json]
    i18n-consensus features public/locales/translation.json
    i18n-consensus config

Exit codes:
    0: Success.  A translate run with unresolved keys still exits 0; the
       keys are written to unresolved.json next to the output.
    1: Fatal error (bad configuration or catalog, source self-check failed,
       oracle attempts exhausted, output not writable), or check found
       structural errors.
    2: No API key configured.

Environment Variables:
    OPEN_AI_KEY: API key for the chat-completion endpoint
    I18N_CONSENSUS_*: Configuration overrides (see i18n_consensus.config)
"""

from __future__ import annotations

import argparse
import asyncio
import configparser
import json
import sys
from dataclasses import replace

from i18n_consensus import __version__
from i18n_consensus.catalog import (
    CatalogError,
    changed_keys,
    load_reference,
    read_catalog,
    residual_path,
    target_path,
    write_catalog,
    write_residual_report,
)
from i18n_consensus.config import TranslateConfig, load_config, print_config_summary
from i18n_consensus.consensus.features import build_feature_set
from i18n_consensus.consensus.service import ConsensusTranslationService, TranslationResult
from i18n_consensus.consensus.validator import validate_against, validate_source
from i18n_consensus.core.bus import EventBus, PipelineEvent
from i18n_consensus.core.events import Events
from i18n_consensus.errors import ConsensusError, SourceSelfInvalidError
from i18n_consensus.logging_setup import configure_logging
from i18n_consensus.oracle.openai import ChatCompletionOracle
from i18n_consensus.oracle.prompts import PromptSet

# ============================================================================
# PROGRESS OUTPUT
# ============================================================================


class ConsoleProgress:
    """
    Prints one line per pipeline stage to stdout.

    Subscribed to the event bus with ``attach``; it only reads events and
    never touches the pipeline's state.
    """

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stdout

    def attach(self, bus: EventBus) -> None:
        bus.on_any(self.handle)

    def handle(self, event: PipelineEvent) -> None:
        line = self.format(event)
        if line:
            print(line, file=self._stream, flush=True)

    @staticmethod
    def format(event: PipelineEvent) -> str | None:
        d = event.detail
        if event.type == Events.RUN_STARTED:
            return (
                f"==> {d['language']}: {d['candidates']} candidates, "
                f"{d['judges']} judges, up to {d['max_rounds']} rounds"
            )
        if event.type == Events.SOURCE_VALIDATED:
            return f"    source self-check passed ({d['keys']} keys)"
        if event.type == Events.CANDIDATE_ACCEPTED:
            return f"    candidate {d['slot']} accepted (attempt {d['attempt']})"
        if event.type == Events.CANDIDATE_REJECTED:
            return f"    candidate {d['slot']} attempt {d['attempt']} rejected: {d['reason']}"
        if event.type == Events.CONSENSUS_COLLAPSED:
            return f"    {len(d['disputed'])} disputed keys after collapse"
        if event.type == Events.JUDGE_REJECTED:
            return f"    judge {d['judge']} attempt {d['attempt']} rejected: {d['reason']}"
        if event.type == Events.CRITIQUE_ROUND_COMPLETED:
            return (
                f"    round {d['round']}: {len(d['resolved'])} resolved, "
                f"{len(d['disputed'])} still disputed"
            )
        if event.type == Events.RUN_COMPLETED:
            status = "complete" if d["complete"] else f"{d['residual']} unresolved"
            return f"<== {d['language']}: {status}"
        if event.type == Events.RUN_FAILED:
            return f"<== {d['language']}: FAILED ({d['error'].splitlines()[0]})"
        return None


# ============================================================================
# COMMANDS
# ============================================================================


def _load_config(args: argparse.Namespace) -> TranslateConfig:
    cfg = load_config(
        getattr(args, "config", None),
        getattr(args, "package_json", None),
    )

    # CLI arguments take precedence over every configuration source
    overrides = {
        name: value
        for name in ("candidates", "judges", "max_attempts", "max_rounds")
        if (value := getattr(args, name, None)) is not None
    }
    if overrides:
        cfg.consensus = replace(cfg.consensus, **overrides)
    if getattr(args, "source", None):
        cfg.catalog.root_file = args.source
    if getattr(args, "output_folder", None):
        cfg.catalog.target_folder = args.output_folder
    if getattr(args, "language", None):
        cfg.catalog.target_languages = list(args.language)
    if getattr(args, "prompts_dir", None):
        cfg.catalog.prompts_dir = args.prompts_dir
    return cfg


def _write_result(
    cfg: TranslateConfig, result: TranslationResult, previous: dict | None = None
) -> None:
    folder = cfg.target_folder_path
    output = write_catalog(target_path(folder, result.language), result.output)
    print(f"    wrote {output}")
    if previous is not None:
        changed = changed_keys(previous, result.output)
        print(f"    {len(changed)} keys changed from the previous translation")

    report = residual_path(folder, result.language)
    if result.residual:
        write_residual_report(report, result.residual)
        print(f"    {len(result.residual)} unresolved keys written to {report}")
        for key in result.unresolved_keys:
            print(f"      - {key}")
    elif report.exists():
        report.unlink()


async def _translate_all(cfg: TranslateConfig, source: dict, bus: EventBus) -> int:
    prompts = PromptSet.load(cfg.prompts_path)
    async with ChatCompletionOracle(cfg.oracle, prompts, bus=bus) as oracle:
        service = ConsensusTranslationService(oracle, cfg.consensus, bus=bus)
        for language in cfg.catalog.target_languages:
            previous = load_reference(cfg.target_folder_path, language)
            result = await service.translate(source, language)
            _write_result(cfg, result, previous)
    return 0


def cmd_translate(args: argparse.Namespace) -> int:
    """
    Translate the source catalog into each target language, one at a time.

    Returns:
        0 on success (unresolved keys included), 1 on error, 2 without API key
    """
    try:
        cfg = _load_config(args)
    except (FileNotFoundError, ValueError, configparser.Error) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1
    configure_logging(cfg.logging, verbose=getattr(args, "verbose", False))

    if not cfg.catalog.target_languages:
        print(
            "Error: No target languages.\n"
            "Pass --language, or set targetLanguages in package.json or "
            "target_languages in config/translate.ini.",
            file=sys.stderr,
        )
        return 1

    try:
        source = read_catalog(cfg.root_file_path)
    except CatalogError as e:
        print(f"Error reading source catalog: {e}", file=sys.stderr)
        return 1

    if getattr(args, "dry_run", False):
        print_config_summary(cfg)
        try:
            reference = validate_source(source)
        except SourceSelfInvalidError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        print(f"Source catalog OK: {len(reference)} keys. Dry run, no oracle calls made.")
        return 0

    if not cfg.oracle.api_key:
        print(
            f"Error: No API key. Set {cfg.oracle.api_key_env} (or OPENAI_API_KEY) "
            "in the environment.",
            file=sys.stderr,
        )
        return 2

    bus = EventBus()
    ConsoleProgress().attach(bus)
    try:
        return asyncio.run(_translate_all(cfg, source, bus))
    except (ConsensusError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nTranslation cancelled.")
        return 1


def cmd_check(args: argparse.Namespace) -> int:
    """
    Structurally check a source catalog, and optionally a translation of it.

    Returns:
        0 if no structural errors were found, 1 otherwise
    """
    try:
        source = read_catalog(args.source)
    except CatalogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        reference = validate_source(source)
    except SourceSelfInvalidError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"{args.source}: OK ({len(reference)} keys)")

    if args.translation is None:
        return 0

    try:
        translation = read_catalog(args.translation)
    except CatalogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    errors = validate_against(reference, translation)
    if not errors:
        print(f"{args.translation}: OK")
        return 0

    print(f"{args.translation}: {len(errors)} structural errors")
    for error in errors:
        print(f"  - {error}")
    return 1


def cmd_features(args: argparse.Namespace) -> int:
    """
    Print the feature set of a catalog as JSON.

    Returns:
        0 on success, 1 on error
    """
    try:
        tree = read_catalog(args.source)
    except CatalogError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    features = build_feature_set(tree)
    payload = {key: value.to_dict() for key, value in features.items()}
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """
    Print the effective configuration.

    Returns:
        0 on success, 1 on error
    """
    try:
        cfg = _load_config(args)
    except (FileNotFoundError, ValueError, configparser.Error) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return 1
    print_config_summary(cfg)
    return 0


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", type=str, help="INI file (default: config/translate.ini)")
    parser.add_argument(
        "--package-json",
        type=str,
        help="package.json holding an i18next-ai-translate block (default: ./package.json)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="i18n-consensus",
        description="Translate i18next catalogs by multi-candidate LLM consensus",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # translate command
    translate_parser = subparsers.add_parser(
        "translate",
        help="Translate the source catalog",
        description=(
            "Generate N candidate translations per language, keep the leaves they agree on, "
            "and let K judges vote on the rest for up to R rounds."
        ),
    )
    _add_config_arguments(translate_parser)
    translate_parser.add_argument("--source", type=str, help="Source catalog (rootFile)")
    translate_parser.add_argument(
        "--language",
        "-l",
        action="append",
        help="Target language; repeat for several (default: targetLanguages)",
    )
    translate_parser.add_argument("--output-folder", type=str, help="Target folder")
    translate_parser.add_argument("--prompts-dir", type=str, help="Folder with prompt templates")
    translate_parser.add_argument("--candidates", type=int, help="Candidates per language (N)")
    translate_parser.add_argument("--judges", type=int, help="Judges per critique round (K)")
    translate_parser.add_argument("--max-rounds", type=int, help="Critique round budget")
    translate_parser.add_argument("--max-attempts", type=int, help="Attempts per oracle call")
    translate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and source without calling the oracle",
    )
    translate_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    translate_parser.set_defaults(func=cmd_translate)

    # check command
    check_parser = subparsers.add_parser(
        "check",
        help="Structurally check catalogs",
        description=(
            "Self-check SOURCE; with TRANSLATION also report every placeholder, nesting, "
            "tag or plural mismatch against SOURCE."
        ),
    )
    check_parser.add_argument("source", help="Source catalog")
    check_parser.add_argument("translation", nargs="?", help="Translated catalog")
    check_parser.set_defaults(func=cmd_check)

    # features command
    features_parser = subparsers.add_parser(
        "features",
        help="Print the feature fingerprint of a catalog",
    )
    features_parser.add_argument("source", help="Catalog file")
    features_parser.set_defaults(func=cmd_features)

    # config command
    config_parser = subparsers.add_parser("config", help="Show the effective configuration")
    _add_config_arguments(config_parser)
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
