import pytest

from marketplace.repositories import usage as usage_repo
from marketplace.services.errors import UsageLimitExceeded


@pytest.fixture(name="promo")
def promo_fixture(seed):
    return seed.promotion(seed.store(), value="10")


def test_read_counts_without_promotions(session):
    snapshot = usage_repo.read_counts(session, [], buyer_id=1)

    assert snapshot.global_counts == {}
    assert snapshot.buyer_counts == {}


def test_read_counts_splits_global_and_buyer(session, seed, promo):
    buyer = seed.buyer()
    other = seed.buyer()
    seed.usage(promo, 5)
    seed.usage(promo, 2, buyer=buyer)
    seed.usage(promo, 3, buyer=other)

    snapshot = usage_repo.read_counts(session, [promo.id], buyer_id=buyer.id)
    anonymous = usage_repo.read_counts(session, [promo.id])

    assert snapshot.global_counts == {promo.id: 5}
    assert snapshot.buyer_counts == {promo.id: 2}
    assert anonymous.buyer_counts == {}


def test_ensure_counters_is_idempotent(session, promo):
    keys = {(promo.id, usage_repo.GLOBAL_KEY), (promo.id, "7")}

    usage_repo.ensure_counters(session, keys)
    usage_repo.ensure_counters(session, keys)

    assert usage_repo._existing_keys(session, keys) == keys
    snapshot = usage_repo.read_counts(session, [promo.id], buyer_id=7)
    assert snapshot.global_counts == {promo.id: 0}
    assert snapshot.buyer_counts == {promo.id: 0}


def test_try_consume_stops_at_limit(session, promo):
    usage_repo.ensure_counters(session, {(promo.id, usage_repo.GLOBAL_KEY)})

    results = [usage_repo.try_consume(session, promo.id, usage_repo.GLOBAL_KEY, 2) for _ in range(3)]

    assert results == [True, True, False]
    assert usage_repo.read_counts(session, [promo.id]).global_counts == {promo.id: 2}


def test_try_consume_without_limit(session, promo):
    usage_repo.ensure_counters(session, {(promo.id, "1")})

    for _ in range(5):
        assert usage_repo.try_consume(session, promo.id, "1", None)

    assert usage_repo.read_counts(session, [promo.id], buyer_id=1).buyer_counts == {promo.id: 5}


def test_try_consume_needs_existing_counter(session, promo):
    assert usage_repo.try_consume(session, promo.id, "42", None) is False


def test_consume_raises_when_limit_reached(session, seed, promo):
    seed.usage(promo, 1)

    with pytest.raises(UsageLimitExceeded) as exc_info:
        usage_repo.consume(session, promo.id, usage_repo.GLOBAL_KEY, 1)

    assert exc_info.value.promotion_id == promo.id


def test_release_never_goes_below_zero(session, seed, promo):
    seed.usage(promo, 1)

    usage_repo.release(session, promo.id, usage_repo.GLOBAL_KEY)
    usage_repo.release(session, promo.id, usage_repo.GLOBAL_KEY)

    assert usage_repo.read_counts(session, [promo.id]).global_counts == {promo.id: 0}
