# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

# Storage namespaces. Each component owns exactly one of these.
KEY_CONFIG = b"config_v2"
PREFIX_POOL_INFO = b"pool_info_v3"
PREFIX_REWARD = b"reward_v3"
PREFIX_STAKER = b"staker_v3"
PREFIX_REWARDS_PER_SEC = b"rewards_per_sec_v3"
PREFIX_UNBONDING_PERIOD = b"unbonding_period"
PREFIX_LOCK_INFO = b"locking_users"
KEY_STEP_VERSION = b"__step_version"

# Snapshot families: (primary, checkpoints, changelog)
STAKED_BALANCES_NAMESPACES = (
    b"staked_balances",
    b"staked_balance__checkpoints",
    b"staked_balance__changelog",
)
STAKED_TOTAL_NAMESPACES = (
    b"total_staked",
    b"total_staked__checkpoints",
    b"total_staked__changelog",
)

DEFAULT_LIMIT = 10
MAX_LIMIT = 30

LOCK_MERGE_SUM = "sum"
LOCK_MERGE_OVERWRITE = "overwrite"


class LedgerConfig:
    def __init__(self,
                 name: str,
                 db_path: str = ":memory:",
                 default_limit: int = DEFAULT_LIMIT,
                 max_limit: int = MAX_LIMIT,
                 # How a lock landing on an already used second is stored
                 lock_merge: str = LOCK_MERGE_SUM,
                 metrics_enabled: bool = True):
        if lock_merge not in (LOCK_MERGE_SUM, LOCK_MERGE_OVERWRITE):
            raise ValueError(f"Unknown lock_merge mode: {lock_merge}")
        if default_limit > max_limit:
            raise ValueError(f"default_limit {default_limit} exceeds max_limit {max_limit}")
        self.name = name
        self.db_path = db_path
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.lock_merge = lock_merge
        self.metrics_enabled = metrics_enabled


CONFIGS: Dict[str, LedgerConfig] = {
    "default": LedgerConfig(name="default"),
    # Same-second unbonds replace each other, as stores written by v3 contracts expect
    "compat": LedgerConfig(name="compat", lock_merge=LOCK_MERGE_OVERWRITE),
}

CURRENT_CONFIG = CONFIGS["default"]
