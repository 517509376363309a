from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from payment_optimizer.config import OptimizerConfig
from payment_optimizer.errors import PaymentOptimizerError
from payment_optimizer.loader import load_instruments, load_orders
from payment_optimizer.optimizer import PaymentOptimizer

logger = logging.getLogger("payment_optimizer")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Allocate orders to payment instruments and print spend per instrument.")
    p.add_argument("orders_path", help="JSON array of orders: id, value, promotions")
    p.add_argument("instruments_path", help="JSON array of instruments: id, discount, limit")
    p.add_argument("--parallelism", type=int, default=None, help="Worker threads (default: CPU count)")
    p.add_argument("--timeout", type=float, default=10.0, help="Deadline in seconds for each parallel phase")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # results go to stdout, logs to stderr
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    try:
        overrides = {"timeout_seconds": args.timeout}
        if args.parallelism is not None:
            overrides["parallelism"] = args.parallelism
        config = OptimizerConfig(**overrides)
        orders = load_orders(args.orders_path)
        instruments = load_instruments(args.instruments_path)
        result = PaymentOptimizer(orders, instruments, config).optimize()
    except (PaymentOptimizerError, ValueError) as e:
        logger.error("Optimization failed: %s", e)
        return 1

    print(result.render())
    return 0


if __name__ == "__main__":
    sys.exit(main())
