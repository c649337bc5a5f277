"""CLI entry point for rate limit fallback."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from .config.loader import find_config_path, load_config
from .errors import FallbackError
from .reliability.error_classifier import ErrorPatternRegistry
from .reliability.extractor import SignatureExtractor
from .reliability.storage import PatternStore


def resolve_pattern_path(config: Optional[str], directory: str) -> Optional[Path]:
    """Explicit ``--config`` path, or the discovered configuration file."""
    if config:
        return Path(config)
    return find_config_path(directory)


async def list_patterns(store: PatternStore):
    """Print every stored learned pattern."""
    patterns = await store.load_patterns()
    if not patterns:
        print("No learned patterns")
        return

    print("Learned Patterns:")
    print("-" * 50)
    for pattern in patterns:
        print(f"{pattern.name} ({pattern.provider or 'generic'})")
        print(f"   Patterns: {', '.join(pattern.patterns)}")
        print(f"   Confidence: {pattern.confidence:.2f}  Samples: {pattern.sample_count}  "
              f"Priority: {pattern.priority}")
        print()


async def run_patterns_command(args) -> int:
    path = resolve_pattern_path(args.config, args.directory)
    if path is None:
        print("Error: no configuration file found; pass --config")
        return 1

    store = PatternStore(path)
    if args.action == 'list':
        await list_patterns(store)
    elif args.action == 'merge':
        merged = await store.merge_duplicate_patterns()
        print(f"Merged {merged} duplicate patterns")
    elif args.action == 'cleanup':
        removed = await store.cleanup_old_patterns(args.max)
        print(f"Removed {removed} patterns")
    elif args.action == 'remove':
        if not args.name:
            print("Error: pattern name required")
            return 1
        if await store.delete_pattern(args.name):
            print(f"Removed {args.name}")
        else:
            print(f"Pattern not found: {args.name}")
            return 1
    return 0


def check_error(error_json: str, directory: str) -> int:
    """Classify an error document given as JSON."""
    try:
        error = json.loads(error_json)
    except json.JSONDecodeError as e:
        print(f"Error: invalid JSON: {e}")
        return 1

    config = load_config(directory)
    registry = ErrorPatternRegistry(custom_patterns=config.error_patterns.custom)
    matched = registry.get_matched_pattern(error)
    signatures = SignatureExtractor().extract(error)

    print(f"Rate limit: {'yes' if matched else 'no'}")
    if matched:
        print(f"Matched pattern: {matched.name} (priority {matched.priority})")
    for signature in signatures:
        print(f"Signature: {json.dumps(signature.to_dict())}")
    return 0 if matched else 2


def show_config(directory: str) -> int:
    path = find_config_path(directory)
    config = load_config(directory)
    print(f"Configuration file: {path or '(defaults)'}")
    print(config.model_dump_json(by_alias=True, indent=2))
    return 0


def main(argv=None):
    """Main CLI function."""
    parser = argparse.ArgumentParser(description="Rate limit fallback CLI")
    parser.add_argument('--directory', default='.', help='Project directory used for config discovery')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    patterns_parser = subparsers.add_parser('patterns', help='Manage learned error patterns')
    patterns_parser.add_argument('action', choices=['list', 'merge', 'cleanup', 'remove'])
    patterns_parser.add_argument('name', nargs='?', help='Pattern name (for remove)')
    patterns_parser.add_argument('--config', help='Path to the pattern document')
    patterns_parser.add_argument('--max', type=int, help='Maximum patterns to keep (for cleanup)')

    check_parser = subparsers.add_parser('check-error', help='Check whether an error is a rate limit')
    check_parser.add_argument('error', help='Error document as JSON')

    subparsers.add_parser('show-config', help='Show the effective configuration')

    args = parser.parse_args(argv)

    try:
        if args.command == 'patterns':
            return asyncio.run(run_patterns_command(args))
        elif args.command == 'check-error':
            return check_error(args.error, args.directory)
        elif args.command == 'show-config':
            return show_config(args.directory)
        else:
            parser.print_help()
            return 0
    except FallbackError as e:
        print(f"Error: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
