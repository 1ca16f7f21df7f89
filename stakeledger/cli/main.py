# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import json
import logging
import os
import sys

from ..protocol.types.common import Order, ProtocolError
from ..protocol.config.params import CONFIGS, CURRENT_CONFIG
from ..ledger.storage.db import StorageDB
from ..ledger.core.state import StakingState

ENV_DB = "STAKELEDGER_DB"


def get_db_path(args):
    return args.db or os.environ.get(ENV_DB) or CURRENT_CONFIG.db_path


def parse_hex(value: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hex string: {value!r}")


def parse_order(value: str) -> Order:
    if value == "asc":
        return Order.ASCENDING
    if value == "desc":
        return Order.DESCENDING
    raise argparse.ArgumentTypeError(f"order must be 'asc' or 'desc', got {value!r}")


def emit(data):
    print(json.dumps(data, indent=2))


# --- Query Commands ---
def cmd_config(state, args):
    emit(state.read_config().model_dump(mode="json"))


def cmd_pools(state, args):
    emit([{"asset": key.hex(), **pool.model_dump(mode="json")} for key, pool in state.all_pools()])


def cmd_pool(state, args):
    emit(state.pool(args.asset).model_dump(mode="json"))


def cmd_rewards(state, args):
    emit([{"asset": key.hex(), **info.model_dump(mode="json")} for key, info in state.reward_infos(args.staker)])


def cmd_stakers(state, args):
    emit([staker.hex() for staker in state.staker_list(args.asset)])


def cmd_locks(state, args):
    locks = state.lock_infos(args.asset, args.staker, args.start_after, args.limit, args.order)
    emit([lock.model_dump(mode="json") for lock in locks])


def cmd_balance_at(state, args):
    emit({"balance": str(state.staked_balance_at(args.asset, args.staker, args.version)),
          "version": args.version})


def cmd_total_at(state, args):
    emit({"total": str(state.total_staked_at(args.asset, args.version)),
          "version": args.version})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stakeledger", description="Inspect a staking ledger database")
    parser.add_argument("--db", help=f"Path to ledger database (or ${ENV_DB})")
    parser.add_argument("--profile", choices=sorted(CONFIGS), default=CURRENT_CONFIG.name)
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("config", help="Show owner and rewarder").set_defaults(func=cmd_config)
    sub.add_parser("pools", help="List all pools").set_defaults(func=cmd_pools)

    p = sub.add_parser("pool", help="Show one pool")
    p.add_argument("asset", type=parse_hex)
    p.set_defaults(func=cmd_pool)

    p = sub.add_parser("rewards", help="Reward records of a staker")
    p.add_argument("staker", type=parse_hex)
    p.set_defaults(func=cmd_rewards)

    p = sub.add_parser("stakers", help="Stakers bonded to an asset")
    p.add_argument("asset", type=parse_hex)
    p.set_defaults(func=cmd_stakers)

    p = sub.add_parser("locks", help="Queued unbonding entries")
    p.add_argument("asset", type=parse_hex)
    p.add_argument("staker", type=parse_hex)
    p.add_argument("--start-after", type=int)
    p.add_argument("--limit", type=int)
    p.add_argument("--order", type=parse_order, default=Order.ASCENDING)
    p.set_defaults(func=cmd_locks)

    p = sub.add_parser("balance-at", help="Staked balance as of a version")
    p.add_argument("asset", type=parse_hex)
    p.add_argument("staker", type=parse_hex)
    p.add_argument("version", type=int)
    p.set_defaults(func=cmd_balance_at)

    p = sub.add_parser("total-at", help="Total staked as of a version")
    p.add_argument("asset", type=parse_hex)
    p.add_argument("version", type=int)
    p.set_defaults(func=cmd_total_at)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = CONFIGS[args.profile]
    db_path = get_db_path(args)
    # Inspection only: never create a ledger file that is not there
    if db_path != ":memory:" and not os.path.isfile(db_path):
        print(f"Error: ledger database not found: {db_path}")
        sys.exit(1)

    db = StorageDB(db_path, metrics_enabled=False)
    try:
        args.func(StakingState(db, config), args)
    except ProtocolError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
