"""Tests for the snowflake ID generator."""
import pytest

from src.mk_common.id_generator import (
    SnowflakeIdGenerator,
    generate_id,
    generate_order_number,
)


def test_ids_are_unique_and_increasing() -> None:
    gen = SnowflakeIdGenerator(worker_id=3)
    ids = [int(gen.next_id()) for _ in range(5000)]
    assert len(set(ids)) == len(ids)
    assert ids == sorted(ids)


def test_module_level_generator() -> None:
    first, second = generate_id(), generate_id()
    assert first.isdigit()
    assert int(second) > int(first)


def test_worker_id_out_of_range() -> None:
    with pytest.raises(ValueError):
        SnowflakeIdGenerator(worker_id=1024)
    with pytest.raises(ValueError):
        SnowflakeIdGenerator(worker_id=-1)


def test_clock_moving_backwards_keeps_ids_increasing() -> None:
    gen = SnowflakeIdGenerator(worker_id=1)
    readings = iter([1_800_000_000_000, 1_799_999_999_000])
    gen._clock_ms = lambda: next(readings)  # type: ignore[method-assign]
    first = int(gen.next_id())
    second = int(gen.next_id())
    assert second == first + 1


def test_different_workers_never_collide() -> None:
    a, b = SnowflakeIdGenerator(worker_id=1), SnowflakeIdGenerator(worker_id=2)
    assert {a.next_id() for _ in range(200)}.isdisjoint({b.next_id() for _ in range(200)})


def test_order_number() -> None:
    assert generate_order_number("12345") == "ORD-12345"
