"""
Unit tests for StateStore.
"""

import asyncio

import pytest

from meshbridge.state import StateStore


class TestStateStore:
    """Tests for the per-entity state cache"""

    def test_get_unknown_is_empty(self):
        """Test unknown entities have empty state"""
        assert StateStore().get("x") == {}

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        """Test callers cannot mutate the cache through get()"""
        store = StateStore()
        _ = await store.merge("x", {"color": {"x": 0.1}})

        snapshot = store.get("x")
        snapshot["color"]["x"] = 0.9
        snapshot["state"] = "ON"

        assert store.get("x") == {"color": {"x": 0.1}}

    @pytest.mark.asyncio
    async def test_merge_returns_new_state(self):
        """Test merge applies the delta on top of the cached state"""
        store = StateStore()
        _ = await store.merge("x", {"state": "ON", "brightness": 1})

        result = await store.merge("x", {"brightness": 5})

        assert result == {"state": "ON", "brightness": 5}

    @pytest.mark.asyncio
    async def test_concurrent_merges_keep_all_keys(self):
        """Test concurrent merges on one entity lose nothing"""
        store = StateStore()

        await asyncio.gather(*(store.merge("x", {f"k{i}": i}) for i in range(20)))

        assert store.get("x") == {f"k{i}": i for i in range(20)}

    @pytest.mark.asyncio
    async def test_merge_waits_for_entity_lock(self):
        """Test a merge is serialised behind a holder of the entity lock"""
        store = StateStore()
        lock = store.lock_for("x")
        await lock.acquire()

        task = asyncio.create_task(store.merge("x", {"state": "ON"}))
        await asyncio.sleep(0)
        assert "x" not in store

        lock.release()
        await task
        assert store.get("x") == {"state": "ON"}

    @pytest.mark.asyncio
    async def test_locks_are_per_entity(self):
        """Test holding one entity's lock does not block another"""
        store = StateStore()
        await store.lock_for("x").acquire()

        await asyncio.wait_for(store.merge("y", {"state": "OFF"}), timeout=1)

        assert store.get("y") == {"state": "OFF"}

    @pytest.mark.asyncio
    async def test_merge_inside_hold(self):
        """Test the holding task can merge without re-acquiring its own lock"""
        store = StateStore()

        async with store.hold("x", "y"):
            result = await asyncio.wait_for(store.merge("x", {"state": "ON"}), timeout=1)

        assert result == {"state": "ON"}
        assert not store.lock_for("x").locked()
        assert not store.lock_for("y").locked()

    @pytest.mark.asyncio
    async def test_hold_blocks_other_tasks(self):
        """Test a read-modify-write in another task waits for the holder to finish"""
        store = StateStore()
        _ = await store.merge("x", {"count": 0})

        async def increment():
            async with store.hold("x"):
                current = store.get("x")["count"]
                await asyncio.sleep(0.01)
                _ = await store.merge("x", {"count": current + 1})

        await asyncio.gather(*(increment() for _ in range(5)))

        assert store.get("x") == {"count": 5}

    @pytest.mark.asyncio
    async def test_overlapping_holds_do_not_deadlock(self):
        """Test holds over overlapping id sets in any argument order all complete"""
        store = StateStore()

        async def touch(*ids):
            async with store.hold(*ids):
                await asyncio.sleep(0.01)
                for entity_id in ids:
                    _ = await store.merge(entity_id, {"seen": True})

        await asyncio.wait_for(
            asyncio.gather(touch("g", "a", "b"), touch("b", "a"), touch("a"), touch("b", "g")),
            timeout=1,
        )

        assert all(store.get(entity_id) == {"seen": True} for entity_id in ("a", "b", "g"))

    @pytest.mark.asyncio
    async def test_hold_released_on_error(self):
        """Test locks are released when the held block raises"""
        store = StateStore()

        with pytest.raises(RuntimeError):
            async with store.hold("x"):
                raise RuntimeError("converter blew up")

        assert not store.lock_for("x").locked()

    @pytest.mark.asyncio
    async def test_forget(self):
        """Test forgetting drops cached state"""
        store = StateStore()
        _ = await store.merge("x", {"state": "ON"})

        store.forget("x")

        assert "x" not in store
        assert store.get("x") == {}
