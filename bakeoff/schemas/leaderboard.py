from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    rank: int
    player_id: int
    player_name: str
    total_score: int
    weekly_score: int
    finalist_score: int
    correct_star_baker: int
    correct_elimination: int
    wrong_star_baker: int
    wrong_elimination: int
    technical_challenge_wins: int
    handshakes: int
    soggy_bottoms: int
    total_episodes: int
    total_episodes_with_picks: int
    accuracy: int


class LeaderboardResponse(BaseModel):
    season_id: int
    entries: list[LeaderboardEntry]


class RecalculateResponse(BaseModel):
    episodes_processed: int
    picks_scored: int
    players_scored: int


class ScoringRulesResponse(BaseModel):
    rules: dict[str, int]
