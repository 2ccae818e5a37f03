"""
Command line entry point for rollup-probe.
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from .accounts import RollupAccount
from .config import CHAIN_NAME_ROLLUP_A, CHAIN_NAME_ROLLUP_B, load_config
from .cross_tx import decode_cross_tx
from .exceptions import RollupProbeError
from .helpers import self_transfer_details, send_cross_tx
from .log import configure_logging
from .poller import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_INTERVAL, ConfirmationPoller, poll_legs
from .session import generate_session_id
from .version import __version__

logger = logging.getLogger(__name__)


def _outcome_dict(outcome) -> dict:
    return {
        "chain": outcome.chain.name,
        "hash": outcome.tx_hash,
        "status": outcome.status.value,
        "reason": outcome.reason,
        "block": outcome.receipt.block_number if outcome.receipt else None,
        "gas_used": outcome.receipt.gas_used if outcome.receipt else None,
        "elapsed": round(outcome.elapsed, 3),
    }


def cmd_session_id(args: argparse.Namespace) -> int:
    for _ in range(args.count):
        print(generate_session_id())
    return 0


def cmd_decode(args: argparse.Namespace) -> int:
    bundle = decode_cross_tx(args.payload)
    print(json.dumps(bundle.to_dict(), indent=2))
    return 0


def cmd_poll(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    poller = ConfirmationPoller(
        config.rollup(args.chain), max_retries=args.max_retries, retry_interval=args.interval
    )
    outcome = poller.poll(args.tx_hash)
    print(json.dumps(_outcome_dict(outcome), indent=2))
    return 0 if outcome.succeeded else 1


def cmd_self_transfer(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    rollup_a, rollup_b = config.rollups()
    account_a = RollupAccount(config.private_key(CHAIN_NAME_ROLLUP_A), rollup_a)
    account_b = RollupAccount(config.private_key(CHAIN_NAME_ROLLUP_B), rollup_b)

    details_b = self_transfer_details(account_b, args.amount)
    if args.fail_b:
        # Spend more than leg B's sender holds so the coordinator drops the bundle
        details_b = details_b.model_copy(update={"value": account_b.get_balance() + 1})

    signed_a, signed_b = send_cross_tx(
        account_a, self_transfer_details(account_a, args.amount), account_b, details_b
    )
    outcomes = poll_legs(
        [(rollup_a, signed_a.hash), (rollup_b, signed_b.hash)],
        max_retries=args.max_retries,
        retry_interval=args.interval,
    )
    print(json.dumps([_outcome_dict(o) for o in outcomes], indent=2))
    return 0 if all(o.succeeded for o in outcomes) else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rollup-probe",
        description="Build, submit and confirm cross-rollup transaction bundles",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="debug, info, warn or error (default: $LOG_LEVEL or info)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("session-id", help="print random session ids")
    p.add_argument("-n", "--count", type=int, default=1)
    p.set_defaults(func=cmd_session_id)

    p = sub.add_parser("decode", help="decode a hex-encoded cross tx message")
    p.add_argument("payload", help="0x-prefixed serialized Message")
    p.set_defaults(func=cmd_decode)

    for name, func, help_text in (
        ("poll", cmd_poll, "wait for a transaction on one chain"),
        ("self-transfer", cmd_self_transfer, "submit a cross-chain self transfer and confirm both legs"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--config", default=None, help="YAML config path (default: $CONFIG_PATH)")
        p.add_argument("--max-retries", type=int, default=DEFAULT_MAX_RETRIES)
        p.add_argument("--interval", type=float, default=DEFAULT_RETRY_INTERVAL)
        p.set_defaults(func=func)
        if name == "poll":
            p.add_argument("--chain", choices=(CHAIN_NAME_ROLLUP_A, CHAIN_NAME_ROLLUP_B), required=True)
            p.add_argument("tx_hash")
        else:
            p.add_argument("--amount", type=int, default=1, help="wei to move on each chain")
            p.add_argument("--fail-b", action="store_true", help="make leg B unaffordable")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except RollupProbeError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
