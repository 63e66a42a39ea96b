"""
Command-line interface for the chat translator.

Provides CLI commands for trying the pipeline outside a chat bot:
- translate: Translate a message into one or more languages
- detect: Run the offline rule-based language detector
- check-glossary: Validate a glossary YAML file
- config: Print the effective configuration

Usage:
    chat-translator translate "こんにちは" [--to zh,en] [--detection ai]
    chat-translator detect "你好，世界！"
    chat-translator check-glossary data/glossary.example.yaml
    chat-translator config

Environment Variables:
    TRANSLATOR_API_KEY: Completion API key (required for translate)
    TRANSLATOR_CONFIG: Path to an INI file overriding config/translator.ini
    See chat_translator.config for the full list.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import yaml

from chat_translator import __version__
from chat_translator import config as config_module
from chat_translator.classifier import detect_language
from chat_translator.client import CompletionClient
from chat_translator.errors import GlossaryValidationError
from chat_translator.gate import ConcurrencyGate
from chat_translator.glossary import GlossaryMatcher, load_glossary
from chat_translator.languages import TranslationTarget
from chat_translator.logging_setup import configure_logging
from chat_translator.orchestrator import DetectionMode, TranslationOrchestrator
from chat_translator.outcomes import (
    BatchAction,
    Outcome,
    TranslationSuccess,
    resolve_batch,
)


def parse_targets(value: str | None) -> list[TranslationTarget] | None:
    """
    Parse a comma-separated ``--to`` value such as ``"zh,en"``.

    Returns:
        The targets in the given order, or None when no value was given.

    Raises:
        ValueError: If any code is not ja, zh or en.
    """
    if not value:
        return None
    codes = [item.strip() for item in value.split(",") if item.strip()]
    return [TranslationTarget.coerce(code) for code in codes] or None


def format_outcome(outcome: Outcome) -> str:
    """Render one outcome as a single output line."""
    prefix = f"[{outcome.source_lang}->{outcome.target_lang}]"
    if isinstance(outcome, TranslationSuccess):
        return f"{prefix} {outcome.translated_text}"
    return f"{prefix} error ({outcome.error_kind.value}): {outcome.error_message}"


async def _run_translate(
    text: str,
    targets: list[TranslationTarget] | None,
    detection_mode: DetectionMode,
    glossary: GlossaryMatcher,
) -> list[Outcome]:
    cfg = config_module.config
    gate = ConcurrencyGate(cfg.rate_limit.max_concurrent, cfg.rate_limit.min_interval_ms)
    async with CompletionClient(
        cfg.api.api_key,
        cfg.api.endpoint_url,
        cfg.api.model,
        timeout_seconds=cfg.api.timeout_seconds,
    ) as client:
        orchestrator = TranslationOrchestrator(
            client, gate, glossary=glossary, detection_mode=detection_mode
        )
        return await orchestrator.translate_all(text, targets)


def _load_matcher(path: Path | None) -> GlossaryMatcher:
    if path is None:
        return GlossaryMatcher()
    return GlossaryMatcher.from_path(path)


def cmd_translate(args: argparse.Namespace) -> int:
    """
    Translate a message and print one line per target.

    Returns:
        0 when at least one target succeeded or the input was skipped,
        1 on error
    """
    cfg = config_module.config
    if not cfg.has_api_key:
        print(
            "Error: no API key configured. Set TRANSLATOR_API_KEY or [api] api_key.",
            file=sys.stderr,
        )
        return 1

    try:
        targets = parse_targets(args.to)
    except ValueError:
        print(f"Error: invalid --to value {args.to!r} (use ja, zh, en)", file=sys.stderr)
        return 1

    detection_mode = DetectionMode(args.detection) if args.detection else cfg.detection_mode
    glossary_path = Path(args.glossary) if args.glossary else cfg.glossary.absolute_path

    try:
        matcher = _load_matcher(glossary_path)
    except (FileNotFoundError, GlossaryValidationError, yaml.YAMLError) as e:
        print(f"Error loading glossary: {e}", file=sys.stderr)
        return 1

    outcomes = asyncio.run(_run_translate(args.text, targets, detection_mode, matcher))
    verdict = resolve_batch(outcomes)

    if verdict.action is BatchAction.SKIP:
        reason = verdict.failure.error_message if verdict.failure else "no targets"
        print(f"Skipped: {reason}")
        return 0

    for outcome in outcomes:
        print(format_outcome(outcome))

    if verdict.action is BatchAction.ERROR:
        print(f"Error: {verdict.to_error()}", file=sys.stderr)
        return 1
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    """Print the rule-based language code for the given text."""
    print(detect_language(args.text))
    return 0


def cmd_check_glossary(args: argparse.Namespace) -> int:
    """
    Load and validate a glossary file.

    Returns:
        0 if the glossary is valid, 1 otherwise
    """
    try:
        glossary = load_glossary(args.path)
    except (FileNotFoundError, GlossaryValidationError, yaml.YAMLError) as e:
        print(f"Invalid glossary: {e}", file=sys.stderr)
        return 1

    print(f"Glossary OK: {glossary.name} v{glossary.version} ({len(glossary.entries)} entries)")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Print the effective configuration."""
    config_module.print_config_summary()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="chat-translator",
        description="Chat translator - Japanese/Chinese/English message translation",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # translate command
    translate_parser = subparsers.add_parser(
        "translate",
        help="Translate a message",
        description=(
            "Detect the language of TEXT and translate it into each target. "
            "Without --to, Japanese goes to zh,en and Chinese to ja,en."
        ),
    )
    translate_parser.add_argument("text", help="Message text to translate")
    translate_parser.add_argument(
        "--to",
        type=str,
        help="Comma-separated target languages, e.g. 'zh,en'",
    )
    translate_parser.add_argument(
        "--detection",
        choices=[mode.value for mode in DetectionMode],
        help="Source-language detection strategy (default: from config)",
    )
    translate_parser.add_argument(
        "--glossary",
        type=str,
        help="Glossary YAML file (default: TRANSLATOR_GLOSSARY_PATH or [glossary] path)",
    )
    translate_parser.set_defaults(func=cmd_translate)

    # detect command
    detect_parser = subparsers.add_parser(
        "detect",
        help="Detect the language of a message (offline)",
    )
    detect_parser.add_argument("text", help="Message text")
    detect_parser.set_defaults(func=cmd_detect)

    # check-glossary command
    glossary_parser = subparsers.add_parser(
        "check-glossary",
        help="Validate a glossary YAML file",
    )
    glossary_parser.add_argument("path", help="Path to the glossary YAML file")
    glossary_parser.set_defaults(func=cmd_check_glossary)

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show the effective configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(config_module.config.logging)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
