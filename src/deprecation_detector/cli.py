"""
CLI entry point for deprecation-detector.

Usage:
    deprecation-detector check [source] [ruleset]    Check source files for deprecated usages
    deprecation-detector dump <ruleset> <output>     Write a rule set to a rule file

The ruleset argument may be a composer.lock file, a library source
directory or a rule file written by `dump`. Options not given on the
command line come from the environment, then from the config file.
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import CONFIG_FILE_NAME, DEFAULT_CACHE_DIR, DEFAULT_RULESET, DEFAULT_SOURCE, DEFAULT_VENDOR_DIR, load_config


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _validate_paths(source: Path, ruleset: Path) -> bool:
    if not source.exists():
        print(f'Source directory argument is invalid: "{source}" is not a path.', file=sys.stderr)
        return False
    if not ruleset.exists():
        print(f'Rule set argument is invalid: "{ruleset}" is not a path.', file=sys.stderr)
        return False
    return True


def cmd_check(args):
    """Check an application for usages of deprecated classes, interfaces and methods."""
    from .errors import RuleSetLoadError
    from .pipeline import CheckPipeline
    from .violation import render_violations

    config = load_config(args.config).with_overrides(
        source=args.source,
        ruleset=args.ruleset,
        vendor_dir=args.vendor_dir,
        cache_dir=args.cache_dir,
        workers=max(1, args.workers) if args.workers else None,
        use_cache=False if args.no_cache else None,
        dedupe=True if args.dedupe else None,
        verbose=True if args.verbose else None,
    )
    configure_logging(config.verbose)

    if not _validate_paths(config.source, config.ruleset):
        return 1

    print("Checking your application for deprecations - this could take a while ...")

    progress = None
    if config.verbose:
        def progress(event):
            if event.processed:
                print(f"  checked {event.processed}/{event.total} files")
            else:
                print(f"  found {event.total} files")

    pipeline = CheckPipeline(config, progress=progress)
    try:
        result = pipeline.run()
    except RuleSetLoadError as e:
        print(f"check aborted - {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not result.violations:
        print("There are no violations - congratulations!")
    else:
        print(f"There are {len(result.violations)} deprecations:")
        print()
        print(render_violations(result.violations))

    if result.skipped:
        print(f"{len(result.skipped)} files could not be parsed and were skipped")
        if config.verbose:
            for warning in result.skipped:
                print(f"  {warning}")

    return 0


def cmd_dump(args):
    """Load a rule set and write it to a rule file."""
    from .errors import RuleSetLoadError
    from .ruleset import loader_for, select_source, write_rule_file

    configure_logging(args.verbose)

    source = select_source(args.ruleset)
    try:
        rule_set = loader_for(source).load_rule_set(source.path)
    except RuleSetLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        write_rule_file(rule_set, args.output)
    except OSError as e:
        print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
        return 1
    print(f"Wrote {len(rule_set)} deprecations to {args.output}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Find usages of deprecated PHP classes, interfaces and methods",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    deprecation-detector check
    deprecation-detector check src/ vendor/acme/library/
    deprecation-detector check src/ composer.lock --no-cache
    deprecation-detector check --config ci/deprecation-detector.yaml
    deprecation-detector dump composer.lock rules.json
"""
    )
    parser.add_argument('--version', action='version', version=f'deprecation-detector {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # check
    check_p = subparsers.add_parser('check', help='Check for deprecated usage')
    check_p.add_argument('source', nargs='?', help=f'The path to the source files (default: {DEFAULT_SOURCE})')
    check_p.add_argument('ruleset', nargs='?',
                         help='The path to the composer.lock file, a rule set or source directory '
                              f'(default: {DEFAULT_RULESET})')
    check_p.add_argument('--config', help=f'YAML config file (default: ./{CONFIG_FILE_NAME} if present)')
    check_p.add_argument('--no-cache', action='store_true', help='Disable rule set cache')
    check_p.add_argument('--cache-dir', help=f'Cache directory (default: {DEFAULT_CACHE_DIR})')
    check_p.add_argument('--vendor-dir',
                         help=f'Installed dependencies directory (default: {DEFAULT_VENDOR_DIR}/ beside the lock file)')
    check_p.add_argument('--workers', type=int, help='Number of files checked in parallel')
    check_p.add_argument('--dedupe', action='store_true',
                         help='Report a usage once even if several checkers match it')
    check_p.add_argument('-v', '--verbose', action='store_true')
    check_p.set_defaults(func=cmd_check)

    # dump
    dump_p = subparsers.add_parser('dump', help='Write a rule set to a rule file')
    dump_p.add_argument('ruleset', help='composer.lock, source directory or rule file')
    dump_p.add_argument('output', help='Rule file to write')
    dump_p.add_argument('-v', '--verbose', action='store_true')
    dump_p.set_defaults(func=cmd_dump)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
