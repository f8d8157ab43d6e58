"""CLI entry point for the range game.

Commands:
  - migrate: Run database migrations
  - score: Settle the current week at Friday's close
  - leaderboard: Print the ranked leaderboard
  - winner: Show last week's winner
  - migrate-legacy: Convert legacy point guesses into ranges
  - reset-week: Delete the current week's predictions
  - serve: Run the HTTP API
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation

from rangegame.config import AppConfig, load_config
from rangegame.errors import PredictionNotFoundError
from rangegame.registry.db import Database
from rangegame.registry.queries import Registry


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _connect() -> tuple[AppConfig, Database, Registry]:
    config = load_config()
    db = Database(config.db_dsn)
    db.connect()
    return config, db, Registry(db)


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid price: {value!r}")
    if price <= 0:
        raise argparse.ArgumentTypeError("price must be positive")
    return price


def cmd_migrate(args: argparse.Namespace) -> None:
    """Run database migrations."""
    _, db, _ = _connect()
    applied = db.run_migrations()
    print(f"Migrations complete ({len(applied)} files).")


def cmd_score(args: argparse.Namespace) -> None:
    """Settle the current week's open predictions."""
    from rangegame.data.prices import build_reference_prices
    from rangegame.scoring.settlement import SettlementService
    from rangegame.timing.weeks import is_settlement_open, week_window_for

    config, db, registry = _connect()
    now = datetime.now(config.tz)
    if not args.force and not is_settlement_open(now, config.tz):
        print("Scores can only be calculated after market close on Friday (use --force).")
        sys.exit(1)

    actual = args.price
    if actual is None:
        friday = week_window_for(now, config.tz).end.date()
        actual = build_reference_prices(config).closing_price(friday, refresh=True)
        if actual is None:
            print(f"No closing price available for {friday}; pass --price.")
            sys.exit(1)

    try:
        result = SettlementService(registry, config.tz).run(actual, now=now, trigger="cli")
    except PredictionNotFoundError as e:
        print(str(e))
        sys.exit(1)

    print(f"Week of {result.week_start.date()} settled at ${result.actual_price}")
    print(f"  Settled:   {result.settled_count}")
    print(f"  Correct:   {result.correct_count}")
    if result.narrowest_width is not None:
        print(f"  Narrowest: ${result.narrowest_width} ({result.narrowest_count} tied)")
    if result.skipped_count or result.failed_count:
        print(f"  Skipped: {result.skipped_count}, failed: {result.failed_count}")


def cmd_leaderboard(args: argparse.Namespace) -> None:
    """Print the ranked leaderboard."""
    from rangegame.scoring.leaderboard import LeaderboardService

    config, db, registry = _connect()
    rows, total = LeaderboardService(registry, config.tz).leaderboard(limit=args.limit)
    print(f"Leaderboard ({total} players):")
    for r in rows:
        print(
            f"  {r.rank:3d}. {r.display_name:20s} {r.total_score:6d} pts "
            f"{r.correct_predictions}/{r.prediction_count} correct ({r.accuracy:.0f}%)"
        )


def cmd_winner(args: argparse.Namespace) -> None:
    """Show last week's winner."""
    from rangegame.scoring.leaderboard import LeaderboardService

    config, db, registry = _connect()
    winner = LeaderboardService(registry, config.tz).previous_week_winner()
    if winner is None:
        print("No settled predictions last week.")
        return
    p = winner.prediction
    print(f"Last week's winner: {winner.display_name} ({winner.week_score} pts)")
    if p.range_min is not None:
        print(f"  Range: ${p.range_min} - ${p.range_max}")


def cmd_migrate_legacy(args: argparse.Namespace) -> None:
    """Convert legacy single-price predictions into +/-1% ranges."""
    from rangegame.scoring.predictions import PredictionService

    config, db, registry = _connect()
    converted = PredictionService(registry, config.tz).migrate_legacy()
    print(f"Converted {converted} legacy predictions.")


def cmd_reset_week(args: argparse.Namespace) -> None:
    """Delete every prediction in the current week."""
    from rangegame.scoring.predictions import PredictionService

    if not args.yes:
        print("Refusing to delete predictions without --yes.")
        sys.exit(1)
    config, db, registry = _connect()
    deleted = PredictionService(registry, config.tz).reset_week()
    print(f"Deleted {deleted} predictions.")


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from rangegame.api.app import create_app

    uvicorn.run(create_app(use_lifespan=True), host=args.host, port=args.port)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="rangegame",
        description="Weekly stock price range prediction game",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subs = parser.add_subparsers(dest="command", required=True)

    subs.add_parser("migrate", help="Run database migrations")

    p_score = subs.add_parser("score", help="Settle the current week")
    p_score.add_argument("--price", type=_price, default=None,
                         help="Actual closing price (default: fetched Friday close)")
    p_score.add_argument("--force", action="store_true",
                         help="Score before Friday's market close")

    p_board = subs.add_parser("leaderboard", help="Print the leaderboard")
    p_board.add_argument("--limit", type=int, default=20, help="Rows to show")

    subs.add_parser("winner", help="Show last week's winner")
    subs.add_parser("migrate-legacy", help="Convert legacy point guesses into ranges")

    p_reset = subs.add_parser("reset-week", help="Delete the current week's predictions")
    p_reset.add_argument("--yes", action="store_true", help="Confirm deletion")

    p_serve = subs.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    commands = {
        "migrate": cmd_migrate,
        "score": cmd_score,
        "leaderboard": cmd_leaderboard,
        "winner": cmd_winner,
        "migrate-legacy": cmd_migrate_legacy,
        "reset-week": cmd_reset_week,
        "serve": cmd_serve,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
