import asyncio
import gc

from bidding.locks import AdmissionGate, AdmissionGates, KeyedLocks


async def test_exclusive_waits_for_shared_holders_to_drain():
    gate = AdmissionGate()
    release = asyncio.Event()
    events = []

    async def admission(n):
        async with gate.shared():
            events.append(f"shared-{n}")
            await release.wait()
        events.append(f"released-{n}")

    async def transition():
        async with gate.exclusive():
            events.append("exclusive")

    admissions = [asyncio.create_task(admission(n)) for n in range(2)]
    await asyncio.sleep(0)
    writer = asyncio.create_task(transition())
    await asyncio.sleep(0.01)

    assert gate.in_flight == 2
    assert "exclusive" not in events

    release.set()
    await asyncio.gather(writer, *admissions)

    assert events.index("exclusive") > events.index("released-0")
    assert events.index("exclusive") > events.index("released-1")


async def test_waiting_exclusive_holds_back_new_shared():
    gate = AdmissionGate()
    release = asyncio.Event()
    events = []

    async def first_admission():
        async with gate.shared():
            await release.wait()

    async def transition():
        async with gate.exclusive():
            events.append("exclusive")

    async def late_admission():
        async with gate.shared():
            events.append("late-shared")

    first = asyncio.create_task(first_admission())
    await asyncio.sleep(0)
    writer = asyncio.create_task(transition())
    await asyncio.sleep(0)
    late = asyncio.create_task(late_admission())
    await asyncio.sleep(0.01)

    assert events == []

    release.set()
    await asyncio.gather(first, writer, late)

    assert events == ["exclusive", "late-shared"]


async def test_cancelled_exclusive_waiter_lets_shared_through():
    gate = AdmissionGate()
    release = asyncio.Event()
    events = []

    async def first_admission():
        async with gate.shared():
            await release.wait()

    async def transition():
        async with gate.exclusive():
            events.append("exclusive")

    async def late_admission():
        async with gate.shared():
            events.append("late-shared")

    first = asyncio.create_task(first_admission())
    await asyncio.sleep(0)
    writer = asyncio.create_task(transition())
    await asyncio.sleep(0)
    late = asyncio.create_task(late_admission())
    await asyncio.sleep(0.01)

    writer.cancel()
    await asyncio.wait_for(late, timeout=1)

    assert events == ["late-shared"]
    release.set()
    await asyncio.gather(first, writer, return_exceptions=True)


async def test_keyed_locks_serialise_per_key():
    locks = KeyedLocks()
    active = {"a": 0, "b": 0}
    peak = {"a": 0, "b": 0}

    async def work(key):
        async with locks.hold(key):
            active[key] += 1
            peak[key] = max(peak[key], active[key])
            await asyncio.sleep(0.001)
            active[key] -= 1

    await asyncio.gather(*(work(k) for k in "aabbab"))

    assert peak == {"a": 1, "b": 1}


async def test_idle_entries_are_released():
    locks = KeyedLocks()
    gates = AdmissionGates()

    async with locks.hold("item"):
        assert len(locks) == 1
    async with gates.shared("auction"):
        pass

    gc.collect()
    assert len(locks) == 0
    assert len(gates._gates) == 0
