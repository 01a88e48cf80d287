from collections import Counter
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from bakeoff.models.models import Pick, PickType, SeasonStatus, UserScore
from bakeoff.services.errors import (
    EliminatedContestantError, FinalistCountError, InconsistentStateError, NotFoundError,
    ValidationError,
)
from bakeoff.services.picks import submit_picks
from bakeoff.services.scoring_engine import (
    EpisodeOutcome, calculate_pick_score, compute_season_totals, finalize_season,
    record_episode_result, recalculate_season_scores, reopen_season, score_episode,
)

A, B, C = 1, 2, 3


def outcome(**kwargs):
    base = {"star_baker_id": A, "eliminated_id": C}
    base.update(kwargs)
    return EpisodeOutcome(**base)


class TestCalculatePickScore:
    def test_correct_star_baker_with_bonuses(self):
        score = calculate_pick_score(
            PickType.STAR_BAKER, A,
            outcome(technical_winner_id=A, handshakes=Counter({A: 1})),
        )
        assert score.points == 5
        assert score.is_correct
        assert score.correct_star_baker == 1
        assert score.technical_challenge_wins == 1
        assert score.handshakes == 1

    def test_correct_elimination(self):
        score = calculate_pick_score(PickType.ELIMINATION, C, outcome())
        assert score.points == 2
        assert score.correct_elimination == 1

    def test_star_baker_pick_went_home(self):
        score = calculate_pick_score(PickType.STAR_BAKER, C, outcome())
        assert score.points == -3
        assert score.wrong_star_baker == 1
        assert not score.is_correct

    def test_elimination_pick_won_star_baker(self):
        score = calculate_pick_score(PickType.ELIMINATION, A, outcome())
        assert score.points == -3
        assert score.wrong_elimination == 1

    def test_neutral_pick_touches_nothing(self):
        score = calculate_pick_score(PickType.STAR_BAKER, B, outcome())
        assert score.points == 0
        assert not score.is_correct
        assert score.correct_star_baker == 0
        assert score.wrong_star_baker == 0

    def test_bonuses_only_count_for_correct_star_baker(self):
        busy = outcome(
            technical_winner_id=B,
            handshakes=Counter({B: 2}),
            soggy_bottoms=Counter({B: 1, C: 3}),
        )
        assert calculate_pick_score(PickType.STAR_BAKER, B, busy).points == 0
        assert calculate_pick_score(PickType.ELIMINATION, B, busy).points == 0
        assert calculate_pick_score(PickType.ELIMINATION, C, busy).points == 2

    def test_soggy_bottoms_cost_a_point_each(self):
        score = calculate_pick_score(
            PickType.STAR_BAKER, A, outcome(soggy_bottoms=Counter({A: 2}))
        )
        assert score.points == 1
        assert score.soggy_bottoms == 2

    def test_accepts_string_pick_type(self):
        assert calculate_pick_score("STAR_BAKER", A, outcome()).points == 3

    def test_finalist_is_not_scored_per_episode(self):
        with pytest.raises(ValidationError):
            calculate_pick_score(PickType.FINALIST, A, outcome())


def _pick(player_id, episode_id, pick_type, contestant_id, points=0):
    return SimpleNamespace(
        player_id=player_id, episode_id=episode_id, pick_type=pick_type,
        contestant_id=contestant_id, points=points,
    )


def test_compute_season_totals():
    outcomes = {10: outcome(technical_winner_id=A), 11: outcome(star_baker_id=B, eliminated_id=A)}
    picks = [
        _pick(1, 10, PickType.STAR_BAKER, A),
        _pick(1, 10, PickType.ELIMINATION, C),
        _pick(1, 11, PickType.STAR_BAKER, A),  # went home
        _pick(1, None, PickType.FINALIST, B, points=3),
        _pick(2, 10, PickType.STAR_BAKER, B),
        _pick(2, 12, PickType.ELIMINATION, A),  # no outcome yet
    ]

    totals = compute_season_totals(picks, outcomes)

    assert totals[1]["weekly_score"] == 4 + 2 - 3
    assert totals[1]["finalist_score"] == 3
    assert totals[1]["total_score"] == 6
    assert totals[1]["technical_challenge_wins"] == 1
    assert totals[1]["wrong_star_baker"] == 1
    assert totals[1]["total_episodes"] == 2
    # Episode 11 only had a Star Baker pick
    assert totals[1]["total_episodes_with_picks"] == 1

    assert totals[2]["total_score"] == 0
    assert totals[2]["total_episodes_with_picks"] == 0


async def _scores(db, season_id):
    result = await db.execute(select(UserScore).where(UserScore.season_id == season_id))
    return {row.player_id: row for row in result.scalars().all()}


async def test_record_result_scores_scenario(db, league):
    a, b, c = league.bakers[:3]
    ep = league.episode
    await submit_picks(db, league.alice.id, league.season.id, "STAR_BAKER", [a.id], ep.id)
    await submit_picks(db, league.alice.id, league.season.id, "ELIMINATION", [c.id], ep.id)
    await submit_picks(db, league.bob.id, league.season.id, "STAR_BAKER", [c.id], ep.id)

    from bakeoff.services.outcomes import record_technical_bonus
    await record_technical_bonus(db, ep.id, "technical_challenge", a.id)
    await record_technical_bonus(db, ep.id, "handshake", a.id)

    episode = await record_episode_result(db, ep.id, a.id, c.id)

    assert episode.is_completed
    assert not episode.is_active
    await db.refresh(c)
    assert c.is_eliminated

    scores = await _scores(db, league.season.id)
    alice = scores[league.alice.id]
    assert alice.weekly_score == 7
    assert alice.correct_star_baker == 1
    assert alice.correct_elimination == 1
    assert alice.total_episodes_with_picks == 1

    bob = scores[league.bob.id]
    assert bob.total_score == -3
    assert bob.wrong_star_baker == 1
    assert bob.total_episodes_with_picks == 0


async def test_admin_picks_are_never_scored(db, league):
    a, _, c = league.bakers[:3]
    ep = league.episode
    db.add(Pick(
        season_id=league.season.id, player_id=league.admin.id, episode_id=ep.id,
        pick_type=PickType.STAR_BAKER, contestant_id=a.id, points=0,
    ))
    await db.flush()

    await record_episode_result(db, ep.id, a.id, c.id)

    assert league.admin.id not in await _scores(db, league.season.id)


async def test_recording_twice_does_not_double_count(db, league):
    a, b, c = league.bakers[:3]
    ep = league.episode
    await submit_picks(db, league.alice.id, league.season.id, "STAR_BAKER", [a.id], ep.id)

    await record_episode_result(db, ep.id, a.id, c.id)
    await record_episode_result(db, ep.id, a.id, c.id)
    assert (await _scores(db, league.season.id))[league.alice.id].total_score == 3

    # Corrected result: A went home after all
    await record_episode_result(db, ep.id, b.id, a.id)
    alice = (await _scores(db, league.season.id))[league.alice.id]
    assert alice.total_score == -3
    assert alice.correct_star_baker == 0
    await db.refresh(c)
    assert not c.is_eliminated


async def test_recalculate_matches_incremental_scoring(db, league):
    a, b, c, d = league.bakers[:4]
    ep1, ep2 = league.episodes[:2]
    for player, sb, elim in ((league.alice, a, c), (league.bob, b, d)):
        await submit_picks(db, player.id, league.season.id, "STAR_BAKER", [sb.id], ep1.id)
        await submit_picks(db, player.id, league.season.id, "ELIMINATION", [elim.id], ep1.id)
    await record_episode_result(db, ep1.id, a.id, c.id)

    for player, sb, elim in ((league.alice, b, d), (league.bob, d, b)):
        await submit_picks(db, player.id, league.season.id, "STAR_BAKER", [sb.id], ep2.id)
        await submit_picks(db, player.id, league.season.id, "ELIMINATION", [elim.id], ep2.id)
    await record_episode_result(db, ep2.id, b.id, d.id)

    columns = ("total_score", "correct_star_baker", "correct_elimination", "wrong_star_baker",
               "wrong_elimination", "total_episodes", "total_episodes_with_picks")
    incremental = {
        pid: tuple(getattr(row, col) for col in columns)
        for pid, row in (await _scores(db, league.season.id)).items()
    }

    # Corrupt a stored result; the full recompute is the source of truth
    picks = (await db.execute(select(Pick).where(Pick.player_id == league.alice.id))).scalars().all()
    for pick in picks:
        pick.points = 99
    await db.flush()

    result = await recalculate_season_scores(db, league.season.id)

    assert result == {"episodes_processed": 2, "picks_scored": 8, "players_scored": 2}
    recalculated = {
        pid: tuple(getattr(row, col) for col in columns)
        for pid, row in (await _scores(db, league.season.id)).items()
    }
    assert recalculated == incremental
    assert incremental[league.alice.id] == (10, 2, 2, 0, 0, 2, 2)
    assert incremental[league.bob.id][0] == -6


async def test_score_episode_requires_a_result(db, league):
    with pytest.raises(ValidationError):
        await score_episode(db, league.episode.id)


async def test_record_result_rejects_same_baker_twice(db, league):
    a = league.bakers[0]
    with pytest.raises(ValidationError):
        await record_episode_result(db, league.episode.id, a.id, a.id)


async def test_record_result_rejects_baker_out_in_another_episode(db, league):
    a, b, c = league.bakers[:3]
    await record_episode_result(db, league.episodes[0].id, a.id, c.id)

    with pytest.raises(EliminatedContestantError):
        await record_episode_result(db, league.episodes[1].id, b.id, c.id)


async def test_results_can_be_recorded_out_of_order(db, league):
    a, b, c = league.bakers[:3]
    ep1, ep2 = league.episodes[:2]
    await record_episode_result(db, ep2.id, a.id, c.id)

    # C was Star Baker in week 1 and went home in week 2
    await record_episode_result(db, ep1.id, c.id, b.id)

    await db.refresh(b)
    await db.refresh(c)
    assert b.is_eliminated
    assert c.is_eliminated


async def test_cannot_eliminate_a_baker_who_appears_later(db, league):
    a, b, c, d = league.bakers[:4]
    ep1, ep2 = league.episodes[:2]
    await record_episode_result(db, ep1.id, a.id, c.id)
    await record_episode_result(db, ep2.id, b.id, d.id)

    # B can't go home in week 1 and win Star Baker in week 2
    with pytest.raises(InconsistentStateError):
        await record_episode_result(db, ep1.id, a.id, b.id)
    with pytest.raises(InconsistentStateError):
        await record_episode_result(db, ep1.id, a.id, d.id)

    assert (ep1.star_baker_id, ep1.eliminated_id) == (a.id, c.id)


async def test_record_result_unknown_episode(db, league):
    a, b = league.bakers[:2]
    with pytest.raises(NotFoundError):
        await record_episode_result(db, 999, a.id, b.id)


async def test_finalize_season(db, league):
    a, b, c, d = league.bakers[:4]
    await submit_picks(db, league.alice.id, league.season.id, "FINALIST", [a.id, b.id, c.id])
    await submit_picks(db, league.bob.id, league.season.id, "FINALIST", [d.id, b.id, c.id])

    result = await finalize_season(db, league.season.id, [a.id, b.id, d.id])

    assert result["finalist_picks_scored"] == 6
    assert result["correct_finalist_picks"] == 4
    assert league.season.status == SeasonStatus.COMPLETE
    scores = await _scores(db, league.season.id)
    assert scores[league.alice.id].finalist_score == 6
    assert scores[league.bob.id].finalist_score == 6

    # A corrected list rewrites the points instead of adding to them
    await finalize_season(db, league.season.id, [a.id, b.id, c.id])
    scores = await _scores(db, league.season.id)
    assert scores[league.alice.id].finalist_score == 9
    assert scores[league.alice.id].total_score == 9
    assert scores[league.bob.id].finalist_score == 6


async def test_finalize_needs_three_different_bakers(db, league):
    a, b = league.bakers[:2]
    with pytest.raises(FinalistCountError):
        await finalize_season(db, league.season.id, [a.id, b.id])
    with pytest.raises(FinalistCountError):
        await finalize_season(db, league.season.id, [a.id, a.id, b.id])


async def test_reopen_season_unscores_finalists(db, league):
    a, b, c = league.bakers[:3]
    ep = league.episode
    await submit_picks(db, league.alice.id, league.season.id, "FINALIST", [a.id, b.id, c.id])
    await submit_picks(db, league.alice.id, league.season.id, "STAR_BAKER", [a.id], ep.id)
    await record_episode_result(db, ep.id, a.id, c.id)
    await finalize_season(db, league.season.id, [a.id, b.id, league.bakers[3].id])
    assert (await _scores(db, league.season.id))[league.alice.id].total_score == 9

    result = await reopen_season(db, league.season.id)

    assert result == {"season_id": league.season.id, "finalist_picks_reset": 3, "players_scored": 1}
    assert league.season.status == SeasonStatus.ACTIVE
    assert league.season.finalist_ids is None
    alice = (await _scores(db, league.season.id))[league.alice.id]
    assert alice.finalist_score == 0
    assert alice.weekly_score == 3
    assert alice.total_score == 3
    picks = (await db.execute(
        select(Pick).where(Pick.pick_type == PickType.FINALIST)
    )).scalars().all()
    assert all(p.is_correct is None and p.points == 0 for p in picks)


async def test_only_a_complete_season_can_be_reopened(db, league):
    with pytest.raises(ValidationError):
        await reopen_season(db, league.season.id)
