"""RedisTtlStore against fakeredis, which runs the Lua scripts through lupa."""

import pytest
from fakeredis import FakeAsyncRedis, FakeServer

from autojs_control.domain.instructions import DeviceInstruction, InstructionQueue, InstructionState, InstructionType
from autojs_control.infrastructure.ttl_store import MISSING, RedisTtlStore, StoreUnavailableError


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
async def client(server):
    return FakeAsyncRedis(server=server, decode_responses=True)


@pytest.fixture
async def redis_store(client):
    store = RedisTtlStore(client)
    yield store
    await store.close()


# ---------------------------------------------------------------------------
# Lua primitives
# ---------------------------------------------------------------------------


async def test_compare_and_set_on_missing_key(redis_store, client):
    swapped, previous = await redis_store.compare_and_set("status:1", (MISSING,), "pending", ttl=60)

    assert (swapped, previous) == (True, None)
    assert await redis_store.get("status:1") == "pending"
    assert 0 < await client.ttl("status:1") <= 60


async def test_compare_and_set_match_and_mismatch(redis_store):
    await redis_store.set("status:1", "pending")

    assert await redis_store.compare_and_set("status:1", ("pending",), "delivered") == (True, "pending")
    assert await redis_store.compare_and_set("status:1", ("pending", MISSING), "cancelled") == (False, "delivered")
    assert await redis_store.get("status:1") == "delivered"


async def test_compare_and_set_without_ttl_leaves_key_persistent(redis_store, client):
    await redis_store.compare_and_set("status:1", (MISSING,), "pending")

    assert await client.ttl("status:1") == -1


async def test_incr_sets_ttl_only_on_first_increment(redis_store, client):
    assert await redis_store.incr("retry:1", ttl=100) == 1
    assert 0 < await client.ttl("retry:1") <= 100

    await client.expire("retry:1", 1000)
    assert await redis_store.incr("retry:1", ttl=100) == 2

    assert await client.ttl("retry:1") > 100


async def test_hincrby_refreshes_hash_ttl(redis_store, client):
    assert await redis_store.hincrby("metrics:d1", "heartbeatCount", ttl=50) == 1
    assert await redis_store.hincrby("metrics:d1", "heartbeatCount", 2, ttl=50) == 3

    assert await redis_store.hgetall("metrics:d1") == {"heartbeatCount": "3"}
    assert 0 < await client.ttl("metrics:d1") <= 50


async def test_delete_if_equals_only_removes_matching_owner(redis_store):
    await redis_store.set("lock:d1", "owner-a", ttl=30)

    assert not await redis_store.delete_if_equals("lock:d1", "owner-b")
    assert await redis_store.delete_if_equals("lock:d1", "owner-a")
    assert not await redis_store.exists("lock:d1")


async def test_set_nx_and_delete(redis_store):
    assert await redis_store.set_nx("lock:d1", "a", ttl=30)
    assert not await redis_store.set_nx("lock:d1", "b", ttl=30)

    assert await redis_store.delete("lock:d1", "lock:absent") == 1
    assert await redis_store.delete() == 0


async def test_list_operations(redis_store):
    await redis_store.rpush("queue", "a", "b", "c")

    assert await redis_store.lpop("queue", 2) == ["a", "b"]
    assert await redis_store.lrange("queue", 0, -1) == ["c"]
    assert await redis_store.lrem("queue", "c") == 1
    assert await redis_store.lpop("queue", 1) == []
    assert await redis_store.llen("queue") == 0


# ---------------------------------------------------------------------------
# InstructionQueue on top of Redis
# ---------------------------------------------------------------------------


async def test_queue_drains_urgent_before_priority_order(redis_store):
    queue = InstructionQueue(redis_store)
    script = DeviceInstruction.create(InstructionType.EXECUTE_SCRIPT, {"scriptId": 1}, priority=1)
    ping = DeviceInstruction.create(InstructionType.PING, {}, priority=0)
    await queue.enqueue("dev-1", script)
    await queue.enqueue("dev-1", ping)

    assert await queue.wait_for_work("dev-1", 1)
    drained = await queue.drain("dev-1", 10)

    assert [item.instruction_id for item in drained.instructions] == [ping.instruction_id, script.instruction_id]
    assert await queue.get_status(script.instruction_id) == InstructionState.DELIVERED.value
    assert (await queue.drain("dev-1", 10)).instructions == []


async def test_queue_cancel_holds_device_lock(redis_store):
    queue = InstructionQueue(redis_store)
    instruction = DeviceInstruction.create(InstructionType.EXECUTE_SCRIPT, {"scriptId": 1}, task_id=5)
    await queue.enqueue("dev-1", instruction)

    assert await queue.cancel("dev-1", task_id=5) == [instruction.instruction_id]
    assert await queue.get_status(instruction.instruction_id) == InstructionState.CANCELLED.value
    assert await queue.peek_depth("dev-1") == 0


# ---------------------------------------------------------------------------
# Failure mapping
# ---------------------------------------------------------------------------


async def test_connection_errors_surface_as_store_unavailable(redis_store, server):
    server.connected = False

    with pytest.raises(StoreUnavailableError):
        await redis_store.get("status:1")
    with pytest.raises(StoreUnavailableError):
        await redis_store.compare_and_set("status:1", (MISSING,), "pending")
    with pytest.raises(StoreUnavailableError):
        await redis_store.incr("retry:1", ttl=10)
