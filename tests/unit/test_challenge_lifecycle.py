"""Challenge lifecycle against the database with explicit clocks."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event, update

from scrolily.competition.challenge_engine import (
    accept_challenge,
    browse_open_groups,
    cancel_challenge,
    create_challenge,
    decline_challenge,
    get_challenge,
    get_challenge_status,
    get_group_challenges,
    lookup_group_for_challenge,
    resolve_challenge,
    sweep_challenges,
)
from scrolily.database import get_engine
from scrolily.db.base import utcnow
from scrolily.db.models import Group
from scrolily.errors import ChallengeNotFound, InvalidTransition
from scrolily.groups.activity import get_group_activity_feed
from scrolily.groups.service import delete_group
from scrolily.progression.xp import grant_xp, lock_user
from scrolily.tasks.queue import CHECK_ACHIEVEMENTS


async def earn(db, user, amount: int, when) -> None:
    locked = await lock_user(db, user.id)
    await grant_xp(db, locked, amount, "verse_read", now=when)


@pytest.fixture
def start():
    return utcnow()


@pytest_asyncio.fixture
async def sides(make_user, make_group):
    """Alpha (leader + idle member) vs Beta (leader + member), Beta open."""
    alpha_leader = await make_user("Alpha Leader")
    alpha_idle = await make_user("Alpha Idle")
    beta_leader = await make_user("Beta Leader")
    beta_member = await make_user("Beta Member")
    alpha = await make_group(alpha_leader, "Alpha", members=(alpha_idle,))
    beta = await make_group(beta_leader, "Beta", members=(beta_member,), open_for_challenges=True)
    return {
        "alpha": alpha,
        "beta": beta,
        "alpha_leader": alpha_leader,
        "alpha_idle": alpha_idle,
        "beta_leader": beta_leader,
        "beta_member": beta_member,
    }


async def _active_challenge(db, sides, start):
    challenge = await create_challenge(db, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id, now=start)
    await accept_challenge(db, sides["beta_leader"].id, challenge.id, now=start)
    await db.commit()
    return challenge


class TestCreate:
    @pytest.mark.asyncio
    async def test_pending_challenge(self, db_session, sides, start):
        challenge = await create_challenge(
            db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id, now=start,
        )
        assert challenge.status == "pending"
        assert challenge.start_time is None

    @pytest.mark.asyncio
    async def test_only_leader_sends(self, db_session, sides, start):
        with pytest.raises(InvalidTransition):
            await create_challenge(db_session, sides["alpha_idle"].id, sides["alpha"].id, sides["beta"].id)

    @pytest.mark.asyncio
    async def test_cannot_challenge_self(self, db_session, sides):
        with pytest.raises(ValueError, match="itself"):
            await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["alpha"].id)

    @pytest.mark.asyncio
    async def test_target_must_be_open(self, db_session, sides):
        with pytest.raises(ValueError, match="not accepting challenges"):
            await create_challenge(db_session, sides["beta_leader"].id, sides["beta"].id, sides["alpha"].id)

    @pytest.mark.asyncio
    async def test_one_open_challenge_per_pair(self, db_session, sides):
        await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)
        with pytest.raises(ValueError, match="already have a pending or active"):
            await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)

    @pytest.mark.asyncio
    async def test_lookup_and_browse_show_only_open_groups(self, db_session, sides):
        assert (await lookup_group_for_challenge(db_session, sides["alpha"].id))["found"] is False
        assert (await lookup_group_for_challenge(db_session, sides["beta"].id))["name"] == "Beta"
        assert [g["name"] for g in await browse_open_groups(db_session)] == ["Beta"]
        assert await browse_open_groups(db_session, exclude_group_id=sides["beta"].id) == []


class TestResponses:
    @pytest.mark.asyncio
    async def test_accept_opens_seven_day_window(self, db_session, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        assert challenge.status == "active"
        assert challenge.start_time == start
        assert challenge.end_time == start + timedelta(days=7)
        assert challenge.challenger_member_count == 2

    @pytest.mark.asyncio
    async def test_challenger_cannot_accept(self, db_session, sides):
        challenge = await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)
        with pytest.raises(InvalidTransition):
            await accept_challenge(db_session, sides["alpha_leader"].id, challenge.id)

    @pytest.mark.asyncio
    async def test_declined_is_terminal(self, db_session, sides):
        challenge = await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)
        await decline_challenge(db_session, sides["beta_leader"].id, challenge.id)
        with pytest.raises(InvalidTransition):
            await accept_challenge(db_session, sides["beta_leader"].id, challenge.id)

    @pytest.mark.asyncio
    async def test_cancel_by_challenger_only(self, db_session, sides):
        challenge = await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)
        with pytest.raises(InvalidTransition):
            await cancel_challenge(db_session, sides["beta_leader"].id, challenge.id)
        cancelled = await cancel_challenge(db_session, sides["alpha_leader"].id, challenge.id)
        assert cancelled.status == "cancelled"

    @pytest.mark.asyncio
    async def test_active_cannot_be_cancelled(self, db_session, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        with pytest.raises(InvalidTransition):
            await cancel_challenge(db_session, sides["alpha_leader"].id, challenge.id)

    @pytest.mark.asyncio
    async def test_missing_challenge(self, db_session, database):
        with pytest.raises(ChallengeNotFound):
            await get_challenge(db_session, 404)


class TestResolution:
    @pytest.mark.asyncio
    async def test_not_resolved_before_end(self, db_session, redis, tasks, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        result = await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=6))
        assert result.status == "active"

    @pytest.mark.asyncio
    async def test_per_active_member_rate_decides(self, db_session, redis, tasks, sides, start):
        """Alpha earns less in total but its only active member outpaces Beta's average."""
        challenge = await _active_challenge(db_session, sides, start)
        day_two = start + timedelta(days=1)
        await earn(db_session, sides["alpha_leader"], 140, day_two)
        await earn(db_session, sides["beta_leader"], 100, day_two)
        await earn(db_session, sides["beta_member"], 50, day_two)
        await db_session.commit()

        done = await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=7, seconds=1))

        assert done.status == "completed"
        assert done.challenger_score == 140.0
        assert done.challenged_score == 75.0
        assert done.winner_group_id == sides["alpha"].id
        assert sides["alpha"].challenge_wins == 1
        assert sides["beta"].challenge_losses == 1
        assert "pubsub:challenge_completed" in redis.channels()

        await db_session.commit()
        for member in (sides["alpha_leader"], sides["alpha_idle"]):
            await db_session.refresh(member)
            assert member.challenge_wins == 1
            assert (CHECK_ACHIEVEMENTS, member.id) in tasks.pending
        await db_session.refresh(sides["beta_leader"])
        assert sides["beta_leader"].challenge_wins == 0

    @pytest.mark.asyncio
    async def test_xp_outside_window_ignored(self, db_session, redis, tasks, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        await earn(db_session, sides["beta_leader"], 500, start - timedelta(hours=1))
        await earn(db_session, sides["beta_leader"], 500, start + timedelta(days=8))
        await earn(db_session, sides["alpha_leader"], 10, start + timedelta(days=2))
        await db_session.commit()

        done = await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=9))
        assert done.challenged_xp_earned == 0
        assert done.winner_group_id == sides["alpha"].id

    @pytest.mark.asyncio
    async def test_no_activity_is_a_tie(self, db_session, redis, tasks, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=8))
        await db_session.commit()

        view = await get_challenge_status(db_session, redis, tasks, challenge.id, now=start + timedelta(days=8))
        assert view["winner_group_id"] is None
        assert view["is_tie"] is True
        feed = await get_group_activity_feed(db_session, sides["alpha"].id)
        assert feed[0]["activity_type"] == "challenge_tied"

    @pytest.mark.asyncio
    async def test_resolution_applies_once(self, db_session, redis, tasks, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        await earn(db_session, sides["alpha_leader"], 30, start + timedelta(days=1))
        await db_session.commit()

        end = start + timedelta(days=7)
        await resolve_challenge(db_session, redis, tasks, challenge.id, now=end)
        await db_session.commit()
        await resolve_challenge(db_session, redis, tasks, challenge.id, now=end + timedelta(hours=1))
        await db_session.commit()

        assert sides["alpha"].challenge_wins == 1
        await db_session.refresh(sides["alpha_leader"])
        assert sides["alpha_leader"].challenge_wins == 1

    @pytest.mark.asyncio
    async def test_sweep_counts_resolved(self, db_session, redis, tasks, sides, start):
        await _active_challenge(db_session, sides, start)
        assert await sweep_challenges(db_session, redis, tasks, now=start + timedelta(days=3)) == 0
        assert await sweep_challenges(db_session, redis, tasks, now=start + timedelta(days=7)) == 1
        await db_session.commit()
        assert await sweep_challenges(db_session, redis, tasks, now=start + timedelta(days=8)) == 0

    @pytest.mark.asyncio
    async def test_equal_nonzero_scores_tie(self, db_session, redis, tasks, sides, start):
        """20 XP from Alpha's one active member against 40 XP over Beta's two."""
        challenge = await _active_challenge(db_session, sides, start)
        day_three = start + timedelta(days=2)
        await earn(db_session, sides["alpha_leader"], 20, day_three)
        await earn(db_session, sides["beta_leader"], 30, day_three)
        await earn(db_session, sides["beta_member"], 10, day_three)
        await db_session.commit()

        done = await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=7))
        await db_session.commit()

        assert done.challenger_score == done.challenged_score == 20.0
        assert done.winner_group_id is None
        assert sides["alpha"].challenge_wins == sides["beta"].challenge_wins == 0
        assert sides["alpha"].challenge_losses == sides["beta"].challenge_losses == 0
        for name in ("alpha_leader", "alpha_idle", "beta_leader", "beta_member"):
            await db_session.refresh(sides[name])
            assert sides[name].challenge_wins == 0
        assert not any(task == CHECK_ACHIEVEMENTS for task, _ in tasks.pending)

    @pytest.mark.asyncio
    async def test_group_counters_build_on_committed_values(self, db_session, redis, tasks, sides, start):
        """Another resolution already bumped Alpha's wins; this session's copy is stale."""
        challenge = await _active_challenge(db_session, sides, start)
        await earn(db_session, sides["alpha_leader"], 30, start + timedelta(days=1))
        await db_session.execute(
            update(Group)
            .where(Group.id.in_((sides["alpha"].id, sides["beta"].id)))
            .values(challenge_wins=Group.challenge_wins + 1, challenge_losses=Group.challenge_losses + 1)
            .execution_options(synchronize_session=False)
        )
        await db_session.commit()
        assert sides["alpha"].challenge_wins == 0

        await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=7))
        await db_session.commit()

        assert sides["alpha"].challenge_wins == 2
        assert sides["beta"].challenge_losses == 2

    @pytest.mark.asyncio
    async def test_member_rows_written_before_group_rows(self, db_session, redis, tasks, sides, start):
        challenge = await _active_challenge(db_session, sides, start)
        await earn(db_session, sides["alpha_leader"], 30, start + timedelta(days=1))
        await db_session.commit()

        statements: list[str] = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.lstrip().upper())

        engine = get_engine().sync_engine
        event.listen(engine, "before_cursor_execute", record)
        try:
            await resolve_challenge(db_session, redis, tasks, challenge.id, now=start + timedelta(days=7))
            await db_session.commit()
        finally:
            event.remove(engine, "before_cursor_execute", record)

        def first(prefix: str) -> int:
            return next(i for i, sql in enumerate(statements) if sql.startswith(prefix))

        assert first("UPDATE USERS") < first("UPDATE CHALLENGES")
        assert first("UPDATE USERS") < first("UPDATE GROUPS")


class TestViews:
    @pytest.mark.asyncio
    async def test_live_metrics_and_flags(self, db_session, redis, tasks, sides, start):
        challenge = await create_challenge(
            db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id, now=start,
        )
        await db_session.commit()

        pending = await get_challenge_status(db_session, redis, tasks, challenge.id, sides["beta_leader"].id)
        assert pending["can_respond"] is True
        assert pending["can_cancel"] is False

        await accept_challenge(db_session, sides["beta_leader"].id, challenge.id, now=start)
        await earn(db_session, sides["beta_member"], 20, start + timedelta(hours=5))
        await db_session.commit()

        live = await get_challenge_status(
            db_session, redis, tasks, challenge.id, sides["alpha_leader"].id, now=start + timedelta(days=1),
        )
        assert live["status"] == "active"
        assert live["challenged"]["xp_earned"] == 20
        assert live["challenged"]["active_members"] == 1
        assert live["challenged"]["score"] == 20.0
        assert live["challenger"]["score"] == 0.0
        assert live["can_respond"] is False

    @pytest.mark.asyncio
    async def test_group_challenges_newest_first(self, db_session, redis, tasks, sides, start):
        first = await create_challenge(
            db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id, now=start,
        )
        await cancel_challenge(db_session, sides["alpha_leader"].id, first.id)
        second = await create_challenge(
            db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id,
            now=start + timedelta(minutes=1),
        )
        await db_session.commit()

        views = await get_group_challenges(db_session, redis, tasks, sides["beta"].id)
        assert [v["id"] for v in views] == [second.id, first.id]


class TestDeletedOpponent:
    @pytest.mark.asyncio
    async def test_finished_challenge_survives_opponent_deletion(self, db_session, redis, tasks, sides, start):
        finished = await _active_challenge(db_session, sides, start)
        await earn(db_session, sides["alpha_leader"], 30, start + timedelta(days=1))
        await db_session.commit()
        await resolve_challenge(db_session, redis, tasks, finished.id, now=start + timedelta(days=7))
        rematch = await create_challenge(
            db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id,
            now=start + timedelta(days=8),
        )
        rematch_id = rematch.id
        await db_session.commit()

        await delete_group(db_session, sides["beta"].id, sides["beta_leader"].id)
        await db_session.commit()

        views = await get_group_challenges(
            db_session, redis, tasks, sides["alpha"].id, sides["alpha_leader"].id, now=start + timedelta(days=9),
        )
        assert [v["id"] for v in views] == [finished.id]
        view = views[0]
        assert view["status"] == "completed"
        assert view["winner_group_id"] == sides["alpha"].id
        assert view["is_tie"] is False
        assert view["challenger"]["name"] == "Alpha"
        assert view["challenged"]["group_id"] is None
        assert view["challenged"]["name"] is None
        assert view["challenged"]["xp_earned"] == 0
        assert sides["alpha"].challenge_wins == 1
        with pytest.raises(ChallengeNotFound):
            await get_challenge(db_session, rematch_id)

    @pytest.mark.asyncio
    async def test_finished_challenge_cannot_be_reopened(self, db_session, sides):
        declined = await create_challenge(db_session, sides["alpha_leader"].id, sides["alpha"].id, sides["beta"].id)
        await decline_challenge(db_session, sides["beta_leader"].id, declined.id)
        await db_session.commit()
        await delete_group(db_session, sides["beta"].id, sides["beta_leader"].id)
        await db_session.commit()

        with pytest.raises(InvalidTransition):
            await accept_challenge(db_session, sides["beta_leader"].id, declined.id)
