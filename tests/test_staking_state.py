# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking Invariant Tests

Tests that the stores stay consistent across bond / unbond / reward steps:
1. Pool total equals the sum of staker bonds after every step
2. Reward index distributes deposits pro rata and over time
3. Failed steps leave every store untouched
4. Historical balances follow the step versions
"""

from decimal import Decimal

import pytest

from stakeledger.ledger.core.state import StakingState
from stakeledger.ledger.storage.db import StorageDB
from stakeledger.protocol.config.params import CONFIGS
from stakeledger.protocol.types.common import ArithmeticOverflowError, NotFoundError, Order, StepError
from stakeledger.protocol.types.staking import AssetInfoRaw, AssetKind, AssetRaw, Config

ASSET = bytes.fromhex("aa" * 20)
PLAIN = bytes.fromhex("bb" * 20)
ALICE = b"\x01" * 20
BOB = b"\x02" * 20

ORAI = AssetInfoRaw(kind=AssetKind.NATIVE_TOKEN, id="orai")
AIRI = AssetInfoRaw(kind=AssetKind.TOKEN, id="ff" * 20)


@pytest.fixture
def db():
    storage = StorageDB(":memory:")
    yield storage
    storage.close()


@pytest.fixture
def state(db):
    """State with one pool (100s unbonding, ORAI:AIRI at 1:3) and one bare pool."""
    st = StakingState(db)
    with db.step():
        st.register_pool(ASSET, "aa" * 20, unbonding_period=100,
                         reward_rates=[AssetRaw(info=ORAI, amount=1), AssetRaw(info=AIRI, amount=3)])
        st.register_pool(PLAIN, "bb" * 20)
    return st


def amounts(assets):
    return [(a.info.id, a.amount) for a in assets]


# ═══════════════════════════════════════════════════════════════════
# BONDING
# ═══════════════════════════════════════════════════════════════════

def test_bond_unbond_keeps_pool_total(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
    assert state.check_pool_invariant(ASSET)
    with db.step():
        state.bond(ASSET, BOB, 300)
    assert state.check_pool_invariant(ASSET)
    with db.step():
        result = state.unbond(ASSET, ALICE, 40, now=1000)
    assert state.check_pool_invariant(ASSET)

    assert result.released == 0
    assert result.lock.unlock_time == 1100
    assert result.lock.amount == 40
    assert state.pool(ASSET).total_bond_amount == 360
    assert state.staker_list(ASSET) == [ALICE, BOB]

    with db.step():
        state.unbond(ASSET, BOB, 300, now=1000)
    assert state.check_pool_invariant(ASSET)
    assert state.staker_list(ASSET) == [ALICE]
    assert state.reward_infos(BOB) == []


def test_first_bond_starts_at_pool_index(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
        state.deposit_reward(ASSET, 200)
    with db.step():
        info = state.bond(ASSET, BOB, 50, native_token=True)

    assert info.index == Decimal(2)
    assert info.pending_reward == 0
    assert info.native_token is True


def test_unbond_more_than_bonded_rolls_back(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
    version = db.current_version()

    with pytest.raises(ArithmeticOverflowError):
        with db.step():
            state.bond(ASSET, BOB, 10)
            state.unbond(ASSET, ALICE, 150, now=0)

    assert state.pool(ASSET).total_bond_amount == 100
    assert state.staker_list(ASSET) == [ALICE]
    assert state.reward_infos(BOB) == []
    assert state.staked_balance(ASSET, BOB) == 0
    assert db.current_version() == version
    assert state.check_pool_invariant(ASSET)


def test_unknown_pool_and_staker(db, state):
    with pytest.raises(NotFoundError):
        with db.step():
            state.bond(b"nope", ALICE, 1)
    with pytest.raises(NotFoundError):
        with db.step():
            state.unbond(ASSET, BOB, 1, now=0)


def test_register_twice(db, state):
    with pytest.raises(ValueError):
        with db.step():
            state.register_pool(ASSET, "aa" * 20)


def test_mutations_outside_step_write_nothing(db, state):
    with pytest.raises(StepError):
        state.bond(ASSET, ALICE, 100)

    assert state.pool(ASSET).total_bond_amount == 0
    assert state.staker_list(ASSET) == []
    assert state.reward_infos(ALICE) == []
    assert state.staked_balance(ASSET, ALICE) == 0
    assert state.check_pool_invariant(ASSET)

    with db.step():
        state.bond(ASSET, ALICE, 100)
    calls = [
        lambda: state.register_pool(b"new", "cc" * 20),
        lambda: state.deposit_reward(ASSET, 10),
        lambda: state.unbond(ASSET, ALICE, 10, now=0),
        lambda: state.withdraw_unlocked(ASSET, ALICE, now=0),
        lambda: state.update_reward_rates(ASSET, [AssetRaw(info=ORAI, amount=1)]),
        lambda: state.withdraw_reward(ASSET, ALICE),
        lambda: state.store_config(Config(owner="01" * 20, rewarder="02" * 20)),
    ]
    for call in calls:
        with pytest.raises(StepError):
            call()

    assert state.all_pools() == [(ASSET, state.pool(ASSET)), (PLAIN, state.pool(PLAIN))]
    assert state.pool(ASSET).total_bond_amount == 100
    assert state.pool(ASSET).reward_index == 0
    assert state.staked_balance(ASSET, ALICE) == 100
    assert state.check_pool_invariant(ASSET)


def test_zero_bond_leaves_no_history(db, state):
    with db.step():
        info = state.bond(ASSET, ALICE, 0)

    assert info.bond_amount == 0
    assert db.current_version() == 0
    assert state.staked_balances.checkpoints() == []
    assert state.staked_total.checkpoints() == []
    assert state.staker_list(ASSET) == []
    assert state.reward_infos(ALICE) == []


# ═══════════════════════════════════════════════════════════════════
# UNBONDING
# ═══════════════════════════════════════════════════════════════════

def test_unbond_without_period_releases_immediately(db, state):
    with db.step():
        state.bond(PLAIN, ALICE, 10)
        result = state.unbond(PLAIN, ALICE, 4, now=500)

    assert result.released == 4
    assert result.lock is None
    assert state.lock_infos(PLAIN, ALICE) == []


def test_zero_period_releases_immediately(db, state):
    with db.step():
        state.unbonding_periods.put(PLAIN, 0)
        state.bond(PLAIN, ALICE, 10)
        result = state.unbond(PLAIN, ALICE, 10, now=500)
    assert result.released == 10


def test_withdraw_unlocked(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
    with db.step():
        state.unbond(ASSET, ALICE, 40, now=1000)
    with db.step():
        state.unbond(ASSET, ALICE, 10, now=1000)
    with db.step():
        state.unbond(ASSET, ALICE, 5, now=1050)

    locks = state.lock_infos(ASSET, ALICE)
    assert [(l.unlock_time, l.amount) for l in locks] == [(1100, 50), (1150, 5)]
    assert [l.unlock_time for l in state.lock_infos(ASSET, ALICE, order=Order.DESCENDING)] == [1150, 1100]

    with db.step():
        assert state.withdraw_unlocked(ASSET, ALICE, now=1099) == 0
    with db.step():
        assert state.withdraw_unlocked(ASSET, ALICE, now=1100) == 50
    with db.step():
        assert state.withdraw_unlocked(ASSET, ALICE, now=2000) == 5
    assert state.lock_infos(ASSET, ALICE) == []


def test_compat_mode_overwrites_same_second(db):
    state = StakingState(db, CONFIGS["compat"])
    with db.step():
        state.register_pool(ASSET, "aa" * 20, unbonding_period=100)
        state.bond(ASSET, ALICE, 100)
    with db.step():
        state.unbond(ASSET, ALICE, 40, now=1000)
    with db.step():
        state.unbond(ASSET, ALICE, 10, now=1000)

    assert [(l.unlock_time, l.amount) for l in state.lock_infos(ASSET, ALICE)] == [(1100, 10)]


# ═══════════════════════════════════════════════════════════════════
# REWARDS
# ═══════════════════════════════════════════════════════════════════

def test_rewards_split_pro_rata(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
        state.bond(ASSET, BOB, 300)
    with db.step():
        pool = state.deposit_reward(ASSET, 400)
    assert pool.reward_index == Decimal(1)

    with db.step():
        alice = state.withdraw_reward(ASSET, ALICE)
    with db.step():
        bob = state.withdraw_reward(ASSET, BOB)

    assert amounts(alice) == [("orai", 25), ("ff" * 20, 75)]
    assert amounts(bob) == [("orai", 75), ("ff" * 20, 225)]

    # Nothing left after payout
    with db.step():
        assert state.withdraw_reward(ASSET, ALICE) == []


def test_rewards_follow_time_bonded(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
        state.deposit_reward(ASSET, 100)
    with db.step():
        state.bond(ASSET, BOB, 100)
        state.deposit_reward(ASSET, 200)

    assert state.pool(ASSET).reward_index == Decimal(2)
    with db.step():
        alice = state.withdraw_reward(ASSET, ALICE)
        bob = state.withdraw_reward(ASSET, BOB)
    assert amounts(alice) == [("orai", 50), ("ff" * 20, 150)]
    assert amounts(bob) == [("orai", 25), ("ff" * 20, 75)]


def test_reward_with_nothing_bonded_waits(db, state):
    with db.step():
        pool = state.deposit_reward(ASSET, 50)
    assert pool.pending_reward == 50
    assert pool.reward_index == Decimal(0)

    with db.step():
        state.bond(ASSET, ALICE, 100)
        pool = state.deposit_reward(ASSET, 50)
    assert pool.pending_reward == 0
    assert pool.reward_index == Decimal(1)

    with db.step():
        assert amounts(state.withdraw_reward(ASSET, ALICE)) == [("orai", 25), ("ff" * 20, 75)]


def test_reward_index_truncates(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 3)
        pool = state.deposit_reward(ASSET, 1)
    assert pool.reward_index == Decimal("0.333333333333333333")

    with db.step():
        state.unbond(ASSET, ALICE, 3, now=0)
    # 3 * 0.333... floors to 0
    info = state.reward_infos(ALICE)
    assert info == []


def test_settled_reward_survives_full_unbond(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
        state.deposit_reward(ASSET, 40)
    with db.step():
        state.unbond(ASSET, ALICE, 100, now=0)

    assert state.staker_list(ASSET) == []
    [(asset_key, info)] = state.reward_infos(ALICE)
    assert asset_key == ASSET
    assert info.bond_amount == 0
    assert info.pending_reward == 40

    with db.step():
        assert amounts(state.withdraw_reward(ASSET, ALICE)) == [("orai", 10), ("ff" * 20, 30)]
    assert state.reward_infos(ALICE) == []


def test_rate_change_moves_rewards_to_pending_withdraw(db, state):
    with db.step():
        state.bond(ASSET, ALICE, 100)
        state.deposit_reward(ASSET, 100)
    with db.step():
        state.update_reward_rates(ASSET, [AssetRaw(info=ORAI, amount=1)])

    [(_, info)] = state.reward_infos(ALICE)
    assert info.pending_reward == 0
    assert amounts(info.pending_withdraw) == [("orai", 25), ("ff" * 20, 75)]

    with db.step():
        state.deposit_reward(ASSET, 40)
    with db.step():
        state.update_reward_rates(ASSET, [AssetRaw(info=ORAI, amount=1), AssetRaw(info=AIRI, amount=3)])

    # The second conversion adds to the ORAI entry and leaves AIRI alone
    [(_, info)] = state.reward_infos(ALICE)
    assert amounts(info.pending_withdraw) == [("orai", 65), ("ff" * 20, 75)]

    with db.step():
        payout = state.withdraw_reward(ASSET, ALICE)
    assert amounts(payout) == [("orai", 65), ("ff" * 20, 75)]
    assert state.reward_infos(ALICE)[0][1].pending_withdraw == []


def test_withdraw_without_rates_is_unconfigured(db, state):
    with db.step():
        state.bond(PLAIN, ALICE, 10)
        state.deposit_reward(PLAIN, 10)

    with pytest.raises(NotFoundError):
        with db.step():
            state.withdraw_reward(PLAIN, ALICE)
    # Accrual is kept for a later attempt
    assert state.pool(PLAIN).reward_index == Decimal(1)


# ═══════════════════════════════════════════════════════════════════
# HISTORY & CONFIG
# ═══════════════════════════════════════════════════════════════════

def test_historical_balances(db, state):
    with db.step(version=10):
        state.bond(ASSET, ALICE, 100)
    with db.step(version=20):
        state.bond(ASSET, BOB, 50)
    with db.step(version=30):
        state.unbond(ASSET, ALICE, 30, now=0)

    assert [state.staked_balance_at(ASSET, ALICE, v) for v in (5, 10, 25, 30)] == [0, 100, 100, 70]
    assert [state.staked_balance_at(ASSET, BOB, v) for v in (10, 20, 99)] == [0, 50, 50]
    assert [state.total_staked_at(ASSET, v) for v in (9, 15, 20, 30, 99)] == [0, 100, 150, 120, 120]
    assert state.total_staked_at(PLAIN, 99) == 0


def test_config_roundtrip(db, state):
    with db.step():
        state.store_config(Config(owner="01" * 20, rewarder="02" * 20))
    assert state.read_config().rewarder == "02" * 20


def test_many_steps_keep_invariant(db, state):
    stakers = [bytes([i]) * 20 for i in range(1, 6)]
    now = 0
    for round_no in range(6):
        for i, staker in enumerate(stakers):
            with db.step():
                state.bond(ASSET, staker, (i + 1) * 10 + round_no)
        with db.step():
            state.deposit_reward(ASSET, 1000 + round_no)
        for staker in stakers[::2]:
            now += 7
            with db.step():
                state.unbond(ASSET, staker, 5, now=now)
        assert state.check_pool_invariant(ASSET)

    total = sum(info.bond_amount for s in stakers for _, info in state.reward_infos(s))
    assert state.pool(ASSET).total_bond_amount == total


def test_queries_do_not_advance_version(db, state):
    with db.step(version=5):
        state.bond(ASSET, ALICE, 100)
    with db.step(version=6):
        state.unbond(ASSET, ALICE, 10, now=0)
    assert db.current_version() == 6

    with db.step() as step:
        assert state.lock_infos(ASSET, ALICE)[0].unlock_time == 100
        assert state.staked_balance_at(ASSET, ALICE, 5) == 100
        assert state.total_staked_at(ASSET, 6) == 90
        assert state.reward_infos(ALICE)[0][1].bond_amount == 90
        assert len(state.all_pools()) == 2
        assert state.staker_list(ASSET) == [ALICE]
        assert not step.has_version

    state.lock_infos(ASSET, ALICE, order=Order.DESCENDING)
    state.staked_balance_at(ASSET, ALICE, 6)
    assert db.current_version() == 6
