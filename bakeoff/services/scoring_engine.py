"""
Scoring Engine: turns recorded episode outcomes and player picks into points.

One rule table, one way of building totals. Per-pick results (``is_correct``,
``points``) are written onto each Pick row, and a player's season aggregate
(UserScore) is always rebuilt from scratch out of every completed episode,
never bumped by a delta. That makes every entry point here safe to run again:
recording the same result twice, rescoring one episode, or the admin's
"recalculate everything" button all land on the same numbers.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.config import get_settings
from bakeoff.models.models import (
    BonusKind, Contestant, Episode, EpisodeBonus, Pick, PickType, Player,
    Season, SeasonStatus, UserScore, WEEKLY_PICK_TYPES,
)
from bakeoff.services.errors import (
    EliminatedContestantError, FinalistCountError, InconsistentStateError, NotFoundError,
    ValidationError,
)
from bakeoff.services.ledger import recalculate_elimination_status

logger = logging.getLogger(__name__)


SCORING_RULES = {
    "FINALIST_CORRECT": 3,              # Each correct finalist, scored at season end only
    "STAR_BAKER_CORRECT": 3,
    "ELIMINATION_CORRECT": 2,
    "STAR_BAKER_WRONG_ELIMINATED": -3,  # Star Baker pick went home
    "ELIMINATION_WRONG_STAR_BAKER": -3, # Elimination pick won Star Baker
    "TECHNICAL_CHALLENGE_WIN": 1,       # Bonuses: correct Star Baker picks only
    "HANDSHAKE": 1,                     # per handshake
    "SOGGY_BOTTOM": -1,                 # per soggy bottom
}

COUNTER_FIELDS = (
    "correct_star_baker",
    "correct_elimination",
    "wrong_star_baker",
    "wrong_elimination",
    "technical_challenge_wins",
    "handshakes",
    "soggy_bottoms",
)


@dataclass
class EpisodeOutcome:
    star_baker_id: int | None
    eliminated_id: int | None
    technical_winner_id: int | None = None
    handshakes: Counter = field(default_factory=Counter)      # contestant_id -> count
    soggy_bottoms: Counter = field(default_factory=Counter)   # contestant_id -> count


@dataclass
class PickScore:
    points: int = 0
    is_correct: bool = False
    correct_star_baker: int = 0
    correct_elimination: int = 0
    wrong_star_baker: int = 0
    wrong_elimination: int = 0
    technical_challenge_wins: int = 0
    handshakes: int = 0
    soggy_bottoms: int = 0


def calculate_pick_score(pick_type, contestant_id: int, outcome: EpisodeOutcome) -> PickScore:
    """
    Score one weekly pick against an episode outcome.

    A pick on a baker who was neither Star Baker nor eliminated is neutral:
    zero points, counted as neither right nor wrong.
    """
    pick_type = PickType(pick_type)
    score = PickScore()

    if pick_type == PickType.STAR_BAKER:
        if contestant_id == outcome.star_baker_id:
            score.points = SCORING_RULES["STAR_BAKER_CORRECT"]
            score.is_correct = True
            score.correct_star_baker = 1

            if outcome.technical_winner_id == contestant_id:
                score.points += SCORING_RULES["TECHNICAL_CHALLENGE_WIN"]
                score.technical_challenge_wins = 1

            handshakes = outcome.handshakes.get(contestant_id, 0)
            score.points += handshakes * SCORING_RULES["HANDSHAKE"]
            score.handshakes = handshakes

            soggy_bottoms = outcome.soggy_bottoms.get(contestant_id, 0)
            score.points += soggy_bottoms * SCORING_RULES["SOGGY_BOTTOM"]
            score.soggy_bottoms = soggy_bottoms
        elif contestant_id == outcome.eliminated_id:
            score.points = SCORING_RULES["STAR_BAKER_WRONG_ELIMINATED"]
            score.wrong_star_baker = 1

    elif pick_type == PickType.ELIMINATION:
        if contestant_id == outcome.eliminated_id:
            score.points = SCORING_RULES["ELIMINATION_CORRECT"]
            score.is_correct = True
            score.correct_elimination = 1
        elif contestant_id == outcome.star_baker_id:
            score.points = SCORING_RULES["ELIMINATION_WRONG_STAR_BAKER"]
            score.wrong_elimination = 1

    else:
        raise ValidationError("Finalist picks are scored at season end, not per episode")

    return score


def empty_totals(total_episodes: int = 0) -> dict:
    totals = {name: 0 for name in COUNTER_FIELDS}
    totals.update(
        total_score=0,
        weekly_score=0,
        finalist_score=0,
        total_episodes=total_episodes,
        total_episodes_with_picks=0,
    )
    return totals


def compute_season_totals(picks, outcomes: dict[int, EpisodeOutcome]) -> dict[int, dict]:
    """
    Fold picks into per-player season totals.

    ``picks`` are the season's non-admin picks (anything with player_id,
    episode_id, pick_type, contestant_id, points); ``outcomes`` maps each
    completed episode id to its outcome. Weekly picks on episodes without an
    outcome contribute nothing. Finalist picks contribute the points stored
    on them, which stay 0 until the season is finalized.
    """
    totals: dict[int, dict] = {}
    weekly_types: dict[tuple[int, int], set] = defaultdict(set)

    for pick in picks:
        player_totals = totals.setdefault(pick.player_id, empty_totals(len(outcomes)))
        pick_type = PickType(pick.pick_type)

        if pick_type == PickType.FINALIST:
            player_totals["finalist_score"] += pick.points or 0
            continue

        outcome = outcomes.get(pick.episode_id)
        if outcome is None:
            continue

        score = calculate_pick_score(pick_type, pick.contestant_id, outcome)
        player_totals["weekly_score"] += score.points
        for name in COUNTER_FIELDS:
            player_totals[name] += getattr(score, name)
        weekly_types[(pick.player_id, pick.episode_id)].add(pick_type)

    for (player_id, _), types in weekly_types.items():
        if all(t in types for t in WEEKLY_PICK_TYPES):
            totals[player_id]["total_episodes_with_picks"] += 1

    for player_totals in totals.values():
        player_totals["total_score"] = player_totals["weekly_score"] + player_totals["finalist_score"]

    return totals


# --- Loading ---

async def _get_season(db: AsyncSession, season_id: int) -> Season:
    result = await db.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    if not season:
        raise NotFoundError("Season not found")
    return season


async def _get_episode(db: AsyncSession, episode_id: int) -> Episode:
    result = await db.execute(select(Episode).where(Episode.id == episode_id))
    episode = result.scalar_one_or_none()
    if not episode:
        raise NotFoundError("Episode not found")
    return episode


async def load_outcomes(db: AsyncSession, episodes: list[Episode]) -> dict[int, EpisodeOutcome]:
    """Outcomes for the given (completed) episodes, bonuses included."""
    outcomes = {
        ep.id: EpisodeOutcome(
            star_baker_id=ep.star_baker_id,
            eliminated_id=ep.eliminated_id,
            technical_winner_id=ep.technical_winner_id,
        )
        for ep in episodes
    }
    if not outcomes:
        return outcomes

    result = await db.execute(
        select(EpisodeBonus.episode_id, EpisodeBonus.kind, EpisodeBonus.contestant_id)
        .where(EpisodeBonus.episode_id.in_(list(outcomes)))
    )
    for episode_id, kind, contestant_id in result.all():
        outcome = outcomes[episode_id]
        if BonusKind(kind) == BonusKind.HANDSHAKE:
            outcome.handshakes[contestant_id] += 1
        elif BonusKind(kind) == BonusKind.SOGGY_BOTTOM:
            outcome.soggy_bottoms[contestant_id] += 1
    return outcomes


async def get_completed_episodes(db: AsyncSession, season_id: int) -> list[Episode]:
    result = await db.execute(
        select(Episode)
        .where(Episode.season_id == season_id, Episode.is_completed == True)
        .order_by(Episode.episode_number)
    )
    return result.scalars().all()


def _scorable_picks():
    """Picks made by non-admin players."""
    return select(Pick).join(Player, Pick.player_id == Player.id).where(Player.is_admin == False)


# --- Writing ---

def _apply_pick_scores(picks, outcome: EpisodeOutcome) -> int:
    for pick in picks:
        score = calculate_pick_score(pick.pick_type, pick.contestant_id, outcome)
        pick.is_correct = score.is_correct
        pick.points = score.points
    return len(picks)


async def rebuild_user_scores(db: AsyncSession, season_id: int) -> dict[int, UserScore]:
    """
    Replace every UserScore row of a season with totals folded from scratch.

    Rows for players with no scorable picks left are removed.
    """
    episodes = await get_completed_episodes(db, season_id)
    outcomes = await load_outcomes(db, episodes)

    picks_result = await db.execute(_scorable_picks().where(Pick.season_id == season_id))
    totals = compute_season_totals(picks_result.scalars().all(), outcomes)

    existing_result = await db.execute(select(UserScore).where(UserScore.season_id == season_id))
    existing = {row.player_id: row for row in existing_result.scalars().all()}

    rows = {}
    for player_id, player_totals in totals.items():
        row = existing.pop(player_id, None)
        if row is None:
            row = UserScore(season_id=season_id, player_id=player_id)
            db.add(row)
        for name, value in player_totals.items():
            setattr(row, name, value)
        rows[player_id] = row

    for stale in existing.values():
        await db.delete(stale)

    await db.flush()
    return rows


async def score_episode(db: AsyncSession, episode_id: int) -> dict:
    """
    (Re)score every non-admin pick of one completed episode, then rebuild
    the season's aggregates. Running it again changes nothing.
    """
    episode = await _get_episode(db, episode_id)
    if not episode.is_completed:
        raise ValidationError("Episode result has not been recorded yet")

    outcome = (await load_outcomes(db, [episode]))[episode.id]
    picks_result = await db.execute(
        _scorable_picks().where(
            Pick.episode_id == episode.id,
            Pick.pick_type.in_(WEEKLY_PICK_TYPES),
        )
    )
    picks_scored = _apply_pick_scores(picks_result.scalars().all(), outcome)
    await db.flush()

    rows = await rebuild_user_scores(db, episode.season_id)
    logger.info(
        "Scored episode %s (season %s): %d picks, %d players",
        episode.episode_number, episode.season_id, picks_scored, len(rows),
    )
    return {
        "episode_id": episode.id,
        "picks_scored": picks_scored,
        "players_scored": len(rows),
    }


async def recalculate_season_scores(db: AsyncSession, season_id: int) -> dict:
    """
    Rescore every completed episode of a season and rebuild all aggregates.
    The source of truth; use after fixing an outcome or a bonus.
    """
    await _get_season(db, season_id)

    episodes = await get_completed_episodes(db, season_id)
    outcomes = await load_outcomes(db, episodes)

    picks_scored = 0
    for episode in episodes:
        picks_result = await db.execute(
            _scorable_picks().where(
                Pick.episode_id == episode.id,
                Pick.pick_type.in_(WEEKLY_PICK_TYPES),
            )
        )
        picks_scored += _apply_pick_scores(picks_result.scalars().all(), outcomes[episode.id])
    await db.flush()

    rows = await rebuild_user_scores(db, season_id)
    logger.info(
        "Recalculated season %s: %d episodes, %d picks, %d players",
        season_id, len(episodes), picks_scored, len(rows),
    )
    return {
        "episodes_processed": len(episodes),
        "picks_scored": picks_scored,
        "players_scored": len(rows),
    }


async def _check_history(
    db: AsyncSession,
    episode: Episode,
    star_baker_id: int,
    eliminated_id: int,
    contestants: dict[int, Contestant],
) -> None:
    """
    Keep the season's results a possible history, whatever order they are
    recorded in: nobody eliminated in an earlier episode bakes again, and
    nobody eliminated here shows up in a later recorded episode.
    """
    earlier = await db.execute(
        select(Episode.eliminated_id, Episode.episode_number).where(
            Episode.season_id == episode.season_id,
            Episode.is_completed == True,
            Episode.episode_number < episode.episode_number,
            Episode.eliminated_id.in_([star_baker_id, eliminated_id]),
        )
    )
    row = earlier.first()
    if row is not None:
        raise EliminatedContestantError(
            f"{contestants[row[0]].name} was already eliminated in episode {row[1]}"
        )

    later = await db.execute(
        select(Episode.episode_number).where(
            Episode.season_id == episode.season_id,
            Episode.is_completed == True,
            Episode.episode_number > episode.episode_number,
            (Episode.star_baker_id == eliminated_id) | (Episode.eliminated_id == eliminated_id),
        ).order_by(Episode.episode_number)
    )
    later_number = later.scalars().first()
    if later_number is not None:
        raise InconsistentStateError(
            f"{contestants[eliminated_id].name} appears in the recorded result of "
            f"episode {later_number}, so cannot be eliminated in episode {episode.episode_number}"
        )


async def record_episode_result(
    db: AsyncSession, episode_id: int, star_baker_id: int, eliminated_id: int
) -> Episode:
    """
    Record who won Star Baker and who went home, then bring the ledger and
    the scores up to date.

    Both bakers are checked against the season's contestant list rather
    than the elimination flags, since the eliminated baker may be flagged
    by a previous recording of this same episode. Everything happens in
    the caller's transaction; an error leaves the episode as it was.
    Recording again for a completed episode replaces the earlier result.
    """
    if not star_baker_id or not eliminated_id:
        raise ValidationError("Episode ID, Star Baker ID, and Eliminated ID are required")
    if star_baker_id == eliminated_id:
        raise ValidationError("Star Baker and eliminated contestant must be different")

    episode = await _get_episode(db, episode_id)

    result = await db.execute(
        select(Contestant).where(Contestant.id.in_([star_baker_id, eliminated_id]))
    )
    found = {c.id: c for c in result.scalars().all()}
    for contestant_id in (star_baker_id, eliminated_id):
        contestant = found.get(contestant_id)
        if contestant is None:
            raise NotFoundError(f"Contestant {contestant_id} not found")
        if contestant.season_id != episode.season_id:
            raise ValidationError(f"Contestant {contestant_id} is not part of this season")

    await _check_history(db, episode, star_baker_id, eliminated_id, found)

    episode.star_baker_id = star_baker_id
    episode.eliminated_id = eliminated_id
    episode.is_completed = True
    episode.is_active = False
    await db.flush()

    await recalculate_elimination_status(db, episode.season_id)
    await score_episode(db, episode.id)

    logger.info(
        "Recorded result for episode %s (season %s): star baker %s, eliminated %s",
        episode.episode_number, episode.season_id, star_baker_id, eliminated_id,
    )
    return episode


async def finalize_season(db: AsyncSession, season_id: int, finalist_ids: list[int]) -> dict:
    """
    The one-time season-end event: record the real finalists and score
    everyone's finalist picks against them. Running it again with a
    corrected list rewrites the finalist points rather than adding to them.
    """
    season = await _get_season(db, season_id)
    finalist_count = get_settings().finalist_count

    unique_ids = set(finalist_ids or [])
    if len(finalist_ids or []) != finalist_count or len(unique_ids) != finalist_count:
        raise FinalistCountError(f"Exactly {finalist_count} different finalists are required")

    result = await db.execute(
        select(Contestant.id).where(Contestant.season_id == season_id, Contestant.id.in_(unique_ids))
    )
    known = {row[0] for row in result.all()}
    missing = sorted(unique_ids - known)
    if missing:
        raise NotFoundError(f"Contestant {missing[0]} not found in this season")

    season.finalist_ids = sorted(unique_ids)
    season.status = SeasonStatus.COMPLETE

    picks_result = await db.execute(
        _scorable_picks().where(Pick.season_id == season_id, Pick.pick_type == PickType.FINALIST)
    )
    finalist_picks = picks_result.scalars().all()
    correct = 0
    for pick in finalist_picks:
        pick.is_correct = pick.contestant_id in unique_ids
        pick.points = SCORING_RULES["FINALIST_CORRECT"] if pick.is_correct else 0
        correct += int(pick.is_correct)
    await db.flush()

    rows = await rebuild_user_scores(db, season_id)
    logger.info(
        "Finalized season %s: %d of %d finalist picks correct",
        season_id, correct, len(finalist_picks),
    )
    return {
        "season_id": season_id,
        "finalist_ids": season.finalist_ids,
        "finalist_picks_scored": len(finalist_picks),
        "correct_finalist_picks": correct,
        "players_scored": len(rows),
    }


async def reopen_season(db: AsyncSession, season_id: int) -> dict:
    """
    Take a completed season back to ACTIVE, undoing ``finalize_season``.

    The recorded finalists are cleared and every finalist pick goes back to
    unscored, so the leaderboard holds weekly points only until the season
    is finalized again.
    """
    season = await _get_season(db, season_id)
    if season.status != SeasonStatus.COMPLETE:
        raise ValidationError("Only a completed season can be reopened")

    season.finalist_ids = None
    season.status = SeasonStatus.ACTIVE

    picks_result = await db.execute(
        select(Pick).where(Pick.season_id == season_id, Pick.pick_type == PickType.FINALIST)
    )
    finalist_picks = picks_result.scalars().all()
    for pick in finalist_picks:
        pick.is_correct = None
        pick.points = 0
    await db.flush()

    rows = await rebuild_user_scores(db, season_id)
    logger.info("Reopened season %s; %d finalist picks unscored", season_id, len(finalist_picks))
    return {
        "season_id": season_id,
        "finalist_picks_reset": len(finalist_picks),
        "players_scored": len(rows),
    }
