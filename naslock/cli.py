"""
naslock CLI — entry point.

Usage:
    naslock unlock <volume>     # Unlock a configured volume (or dataset id)
    naslock volumes             # List configured volumes
    naslock version             # Show version

Global options:
    --config PATH               # Config file (default: $NASLOCK_CONFIG or per-user config dir)
    -v, --verbose               # Debug logging
"""

from __future__ import annotations

import argparse
import logging
import sys

from naslock.errors import EXIT_INTERRUPTED, EXIT_UNEXPECTED, NaslockError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="naslock",
        description="Unlock encrypted TrueNAS datasets using secrets stored in KeePass.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Config file (default: $NASLOCK_CONFIG or ~/.config/naslock/config.toml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # unlock
    unlock_parser = subparsers.add_parser("unlock", help="Unlock a dataset")
    unlock_parser.add_argument("volume", help="Volume name from the config, or a dataset id")

    # volumes
    subparsers.add_parser("volumes", help="List configured volumes")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.version or args.command == "version":
        from naslock import __version__

        print(f"naslock {__version__}")
        return 0

    try:
        if args.command == "unlock":
            return _cmd_unlock(args)
        elif args.command == "volumes":
            return _cmd_volumes(args)
        else:
            parser.print_help()
            return 0
    except NaslockError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.debug("Unexpected error", exc_info=True)
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_UNEXPECTED


def _cmd_unlock(args: argparse.Namespace) -> int:
    from naslock.config import load_config, resolve_config_path
    from naslock.truenas import OutcomeKind
    from naslock.unlock import unlock_volume

    cfg = load_config(resolve_config_path(args.config))
    outcome = unlock_volume(cfg, args.volume)

    if outcome.kind is OutcomeKind.ALREADY_UNLOCKED:
        print(f"{args.volume}: already unlocked")
    else:
        print(f"{args.volume}: {outcome.detail or 'unlocked'}")
    return 0


def _cmd_volumes(args: argparse.Namespace) -> int:
    from naslock.config import load_config, resolve_config_path

    cfg = load_config(resolve_config_path(args.config))
    if not cfg.volumes:
        print("No volumes configured.")
        return 0

    width = max(len(name) for name in cfg.volumes)
    for name in sorted(cfg.volumes):
        volume = cfg.volumes[name]
        nas = cfg.nas[volume.nas]
        print(f"  {name:<{width}}  {volume.dataset}  on {nas.name} ({nas.host})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
