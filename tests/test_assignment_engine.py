import asyncio

import pytest

from fakes import ORDER_LOCATION, FakeGeo
from services.assignment_service.service import OPERATOR_OVERRIDE_SCORE, AssignmentEngine
from services.order_service.models import Assignment
from services.outbox_service.models import OutboxKind
from shared.exceptions import CommitConflict, InvalidTransition, NotFound

NORTH = (-33.90, 18.40)
SOUTH = (-34.10, 18.50)
EAST = (-33.95, 18.70)


class FlakyEngine(AssignmentEngine):
    """Loses the commit race a fixed number of times before behaving normally."""

    def __init__(self, *args, conflicts=1, **kwargs):
        super().__init__(*args, **kwargs)
        self.conflicts = conflicts
        self.commits = 0

    async def commit_assignment(self, db, order_id, distributor_id, score):
        self.commits += 1
        if self.conflicts:
            self.conflicts -= 1
            raise CommitConflict("lost the race")
        return await super().commit_assignment(db, order_id, distributor_id, score)


class TestSelectDistributor:
    async def test_nearest_distributor_selected(self, db, make_distributor):
        near = await make_distributor(name="Near", lat=NORTH[0], lng=NORTH[1])
        await make_distributor(name="Far", lat=SOUTH[0], lng=SOUTH[1])
        engine = AssignmentEngine(FakeGeo(distances_km={NORTH: 5, SOUTH: 50}))

        selection = await engine.select_distributor(db, ORDER_LOCATION)

        assert selection.distributor_id == near.id
        assert selection.score == pytest.approx(0.6 * 95 + 0.4 * 100)

    async def test_every_candidate_is_measured(self, db, make_distributor):
        await make_distributor(lat=NORTH[0], lng=NORTH[1])
        await make_distributor(lat=SOUTH[0], lng=SOUTH[1])
        await make_distributor(lat=EAST[0], lng=EAST[1])
        geo = FakeGeo(distances_km={NORTH: 5, SOUTH: 6, EAST: 7})

        await AssignmentEngine(geo).select_distributor(db, ORDER_LOCATION)

        assert sorted(geo.distance_calls) == sorted([NORTH, SOUTH, EAST])

    async def test_full_and_inactive_distributors_are_skipped(self, db, make_distributor):
        await make_distributor(lat=NORTH[0], lng=NORTH[1], current=10, max_capacity=10)
        await make_distributor(lat=EAST[0], lng=EAST[1], active=False)
        open_one = await make_distributor(lat=SOUTH[0], lng=SOUTH[1])
        geo = FakeGeo(distances_km={NORTH: 1, SOUTH: 40, EAST: 1})

        selection = await AssignmentEngine(geo).select_distributor(db, ORDER_LOCATION)

        assert selection.distributor_id == open_one.id
        assert geo.distance_calls == [SOUTH]

    async def test_no_candidates(self, db, make_distributor):
        await make_distributor(current=10, max_capacity=10)

        assert await AssignmentEngine(FakeGeo()).select_distributor(db, ORDER_LOCATION) is None

    async def test_failed_lookup_drops_only_that_candidate(self, db, make_distributor):
        await make_distributor(lat=NORTH[0], lng=NORTH[1])
        other = await make_distributor(lat=SOUTH[0], lng=SOUTH[1])
        geo = FakeGeo(distances_km={NORTH: 1, SOUTH: 60}, failing={NORTH})

        selection = await AssignmentEngine(geo).select_distributor(db, ORDER_LOCATION)

        assert selection.distributor_id == other.id

    async def test_slow_lookup_times_out(self, db, make_distributor):
        await make_distributor(lat=NORTH[0], lng=NORTH[1])
        other = await make_distributor(lat=SOUTH[0], lng=SOUTH[1])
        geo = FakeGeo(distances_km={NORTH: 1, SOUTH: 60}, slow={NORTH}, delay=1.0)

        selection = await AssignmentEngine(geo, geo_timeout=0.05).select_distributor(db, ORDER_LOCATION)

        assert selection.distributor_id == other.id

    async def test_unroutable_candidates_yield_none(self, db, make_distributor):
        await make_distributor(lat=NORTH[0], lng=NORTH[1])

        assert await AssignmentEngine(FakeGeo()).select_distributor(db, ORDER_LOCATION) is None


class TestCommitAssignment:
    async def test_commit_reserves_capacity_and_opens_offer(self, db, make_distributor, make_order, fetch):
        distributor = await make_distributor(current=3, max_capacity=10)
        order = await make_order()

        assignment = await AssignmentEngine(FakeGeo()).commit_assignment(db, order.id, distributor.id, 72.5)

        assert assignment.status == "pending"
        assert assignment.score == 72.5
        assert (await fetch.distributor(distributor.id)).current_capacity == 4
        stored = await fetch.order(order.id)
        assert stored.status == "assigned"
        assert stored.assigned_distributor_id == distributor.id
        messages = await fetch.outbox(order.id)
        assert [m.kind for m in messages] == [OutboxKind.ASSIGNMENT_NOTIFICATION.value]
        assert messages[0].payload == {"distributor_id": distributor.id}

    async def test_full_distributor_conflicts_and_changes_nothing(self, db, make_distributor, make_order, fetch):
        distributor = await make_distributor(current=10, max_capacity=10)
        order = await make_order()

        with pytest.raises(CommitConflict):
            await AssignmentEngine(FakeGeo()).commit_assignment(db, order.id, distributor.id, 50.0)

        assert (await fetch.distributor(distributor.id)).current_capacity == 10
        stored = await fetch.order(order.id)
        assert stored.status == "new"
        assert stored.assigned_distributor_id is None
        assert await fetch.assignments(order.id) == []
        assert await fetch.outbox(order.id) == []

    async def test_last_slot_goes_to_one_order_only(self, db, make_distributor, make_order, fetch):
        distributor = await make_distributor(current=9, max_capacity=10)
        first = await make_order()
        second = await make_order()
        engine = AssignmentEngine(FakeGeo())

        await engine.commit_assignment(db, first.id, distributor.id, 50.0)
        with pytest.raises(CommitConflict):
            await engine.commit_assignment(db, second.id, distributor.id, 50.0)

        assert (await fetch.distributor(distributor.id)).current_capacity == 10
        assert (await fetch.order(second.id)).status == "new"

    async def test_order_already_assigned_conflicts(self, db, make_distributor, make_order, fetch):
        a = await make_distributor()
        b = await make_distributor(name="Other")
        order = await make_order()
        engine = AssignmentEngine(FakeGeo())
        await engine.commit_assignment(db, order.id, a.id, 50.0)

        with pytest.raises(CommitConflict):
            await engine.commit_assignment(db, order.id, b.id, 60.0)

        assert (await fetch.distributor(b.id)).current_capacity == 0
        assert len(await fetch.assignments(order.id)) == 1


class TestAssignOrder:
    async def test_selects_and_commits(self, db, make_distributor, make_order, fetch):
        near = await make_distributor(lat=NORTH[0], lng=NORTH[1])
        await make_distributor(lat=SOUTH[0], lng=SOUTH[1])
        order = await make_order()
        engine = AssignmentEngine(FakeGeo(distances_km={NORTH: 5, SOUTH: 50}))

        assignment = await engine.assign_order(db, order.id)

        assert assignment.distributor_id == near.id
        assert (await fetch.order(order.id)).assigned_distributor_id == near.id

    async def test_nobody_available_leaves_order_new(self, db, make_distributor, make_order, fetch):
        await make_distributor(current=10, max_capacity=10)
        order = await make_order()

        assert await AssignmentEngine(FakeGeo()).assign_order(db, order.id) is None
        assert (await fetch.order(order.id)).status == "new"

    async def test_retries_after_conflict(self, db, make_distributor, make_order, fetch):
        distributor = await make_distributor(lat=NORTH[0], lng=NORTH[1])
        order = await make_order()
        engine = FlakyEngine(FakeGeo(distances_km={NORTH: 5}), max_attempts=3, conflicts=1)

        assignment = await engine.assign_order(db, order.id)

        assert engine.commits == 2
        assert assignment.distributor_id == distributor.id
        assert (await fetch.distributor(distributor.id)).current_capacity == 1

    async def test_gives_up_after_max_attempts(self, db, make_distributor, make_order, fetch):
        await make_distributor(lat=NORTH[0], lng=NORTH[1])
        order = await make_order()
        engine = FlakyEngine(FakeGeo(distances_km={NORTH: 5}), max_attempts=2, conflicts=5)

        with pytest.raises(CommitConflict):
            await engine.assign_order(db, order.id)

        assert engine.commits == 2
        assert (await fetch.order(order.id)).status == "new"

    async def test_operator_override_skips_selection(self, db, make_distributor, make_order, fetch):
        distributor = await make_distributor()
        order = await make_order(location=None)
        geo = FakeGeo()

        assignment = await AssignmentEngine(geo).assign_order(db, order.id, distributor_id=distributor.id)

        assert assignment.distributor_id == distributor.id
        assert assignment.score == OPERATOR_OVERRIDE_SCORE
        assert geo.distance_calls == []
        assert (await fetch.distributor(distributor.id)).current_capacity == 1

    async def test_override_with_unknown_distributor(self, db, make_order):
        order = await make_order()

        with pytest.raises(NotFound):
            await AssignmentEngine(FakeGeo()).assign_order(db, order.id, distributor_id=999)

    async def test_order_without_location_needs_override(self, db, make_distributor, make_order):
        await make_distributor()
        order = await make_order(location=None)

        with pytest.raises(InvalidTransition):
            await AssignmentEngine(FakeGeo()).assign_order(db, order.id)

    async def test_only_new_orders(self, db, make_distributor, make_order):
        distributor = await make_distributor()
        order = await make_order()
        engine = AssignmentEngine(FakeGeo())
        await engine.assign_order(db, order.id, distributor_id=distributor.id)

        with pytest.raises(InvalidTransition):
            await engine.assign_order(db, order.id, distributor_id=distributor.id)

    async def test_missing_order(self, db):
        with pytest.raises(NotFound):
            await AssignmentEngine(FakeGeo()).assign_order(db, 4242)


class TestConcurrentCommits:
    """Each contender commits through its own session, as separate requests would."""

    async def _race(self, session_factory, commits):
        engine = AssignmentEngine(FakeGeo())

        async def attempt(order_id, distributor_id):
            async with session_factory() as session:
                return await engine.commit_assignment(session, order_id, distributor_id, 50.0)

        return await asyncio.gather(*(attempt(*c) for c in commits), return_exceptions=True)

    async def test_last_slot_is_taken_once(self, session_factory, make_distributor, make_order, fetch):
        distributor = await make_distributor(current=9, max_capacity=10)
        first = await make_order()
        second = await make_order()

        results = await self._race(session_factory, [(first.id, distributor.id), (second.id, distributor.id)])

        winners = [r for r in results if isinstance(r, Assignment)]
        losers = [r for r in results if isinstance(r, CommitConflict)]
        assert len(winners) == 1 and len(losers) == 1
        assert (await fetch.distributor(distributor.id)).current_capacity == 10
        statuses = sorted([(await fetch.order(first.id)).status, (await fetch.order(second.id)).status])
        assert statuses == ["assigned", "new"]

    async def test_capacity_is_never_oversubscribed(self, session_factory, make_distributor, make_order, fetch):
        distributor = await make_distributor(current=8, max_capacity=10)
        orders = [await make_order() for _ in range(4)]

        results = await self._race(session_factory, [(o.id, distributor.id) for o in orders])

        assert sum(isinstance(r, Assignment) for r in results) == 2
        assert all(isinstance(r, (Assignment, CommitConflict)) for r in results)
        assert (await fetch.distributor(distributor.id)).current_capacity == 10

    async def test_one_order_offered_to_two_distributors_at_once(
        self, session_factory, make_distributor, make_order, fetch
    ):
        a = await make_distributor()
        b = await make_distributor(name="Other")
        order = await make_order()

        results = await self._race(session_factory, [(order.id, a.id), (order.id, b.id)])

        assert sum(isinstance(r, Assignment) for r in results) == 1
        assert all(isinstance(r, (Assignment, CommitConflict)) for r in results)
        capacities = [(await fetch.distributor(d.id)).current_capacity for d in (a, b)]
        assert sorted(capacities) == [0, 1]
        assert len(await fetch.assignments(order.id)) == 1
