"""TrendBot — application entry point.

Boots the FastAPI diagnostics server and provides the CLI entry point for
replaying a bar file through the engine or serving the API.
"""

import logging
import os

from fastapi import FastAPI

from trendbot.api.routers import router

app = FastAPI(title="TrendBot Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("trendbot")


@app.get("/health")
async def health():
    """Liveness check."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _build_parser():
    import argparse

    parser = argparse.ArgumentParser(description="TrendBot decision engine")
    parser.add_argument("--env", help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    replay = sub.add_parser("replay", help="Replay a bar CSV through a paper broker")
    replay.add_argument("--bars", required=True, help="CSV with time,open,high,low,close,volume")
    replay.add_argument("--symbol", help="Overrides TRADE_SYMBOL")
    replay.add_argument("--higher-tf", help="Fractal timeframe rule (default: HIGHER_TIMEFRAME)")
    replay.add_argument("--balance", type=float, default=10_000.0)
    replay.add_argument("--spread-pips", type=float, default=0.0)
    replay.add_argument("--pip-size", type=float, default=0.0001)
    replay.add_argument("--pip-value", type=float, default=0.0001,
                        help="Account currency per pip per unit")
    replay.add_argument("--volume-min", type=float, default=1_000)
    replay.add_argument("--volume-max", type=float, default=10_000_000)
    replay.add_argument("--volume-step", type=float, default=1_000)
    replay.add_argument("--digits", type=int, default=5)

    sub.add_parser("serve", help="Serve the diagnostics API")
    return parser


def _run_replay(config, args) -> dict:
    """Load bars, replay them, and print the summary."""
    from trendbot.broker.models import SymbolMetadata
    from trendbot.broker.paper import PaperBroker
    from trendbot.api.routers import configure_routers
    from trendbot.cli.dashboard import print_summary
    from trendbot.data.bars import load_bars_csv
    from trendbot.engine import TradingEngine
    from trendbot.replay import ReplayRunner

    symbol = SymbolMetadata(
        name=config.trade_symbol,
        pip_size=args.pip_size,
        pip_value=args.pip_value,
        volume_min=args.volume_min,
        volume_max=args.volume_max,
        volume_step=args.volume_step,
        digits=args.digits,
    )
    engine = TradingEngine.from_config(config, symbol)
    broker = PaperBroker(symbol, balance=args.balance, spread_pips=args.spread_pips)
    configure_routers(broker=broker, config=config)

    higher_tf = args.higher_tf or (
        config.higher_timeframe if config.use_reaction_filter else None
    )
    frame = load_bars_csv(args.bars)
    summary = ReplayRunner(engine, broker, higher_timeframe=higher_tf).run(frame)
    print_summary(summary)
    return summary


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the selected command."""
    from trendbot.config import load_config

    args = _build_parser().parse_args(argv)
    if getattr(args, "symbol", None):
        os.environ["TRADE_SYMBOL"] = args.symbol

    config = load_config(args.env)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "replay":
        _run_replay(config, args)
    else:
        import uvicorn
        from trendbot.api.routers import configure_routers

        configure_routers(config=config)
        logger.info("Diagnostics API on http://localhost:%d", config.health_port)
        uvicorn.run(app, host="0.0.0.0", port=config.health_port, log_level="info")


if __name__ == "__main__":
    _run_cli()
