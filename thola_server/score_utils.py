import numpy as np
from typing import List

from thola_server.models.schema_models import UserStatsSchema, UserStatsWithRateSchema

LEADERBOARD_SIZE = 10
# Players need this many games before they are ranked by win rate
MIN_GAMES_FOR_WIN_RATE = 5


class StatsUtils:
    def get_win_rate(self, games_won: int, games_played: int) -> float:
        """calculate the win rate in percent

        Args:
            games_won (int): Games in which the player got out
            games_played (int): Finished games the player took part in

        Returns:
            float: Win rate rounded to one decimal, 0.0 without games
        """
        if games_played <= 0:
            return 0.0
        return float(np.round(games_won / games_played * 100, 1))

    def with_win_rate(self, stats: List[UserStatsSchema]) -> List[UserStatsWithRateSchema]:
        return [
            UserStatsWithRateSchema(
                **player.model_dump(),
                win_rate=self.get_win_rate(player.games_won, player.games_played),
            )
            for player in stats
        ]

    def top_by(self, stats: List[UserStatsWithRateSchema], field: str, minimum: int = 1) -> List[UserStatsWithRateSchema]:
        """Players with at least `minimum` in `field`, best first"""
        eligible = [player for player in stats if getattr(player, field) >= minimum]
        return sorted(eligible, key=lambda player: getattr(player, field), reverse=True)[:LEADERBOARD_SIZE]

    def get_leaderboards(self, stats: List[UserStatsSchema]) -> dict:
        """Build the leaderboards shown on the stats page

        Args:
            stats (List[UserStatsSchema]): Every player's counters

        Returns:
            dict: Totals and the top players by wins, Thola received, losses and win rate
        """
        players = self.with_win_rate(stats)
        ranked = [player for player in players if player.games_played >= MIN_GAMES_FOR_WIN_RATE]
        return {
            "total_players": len(players),
            "total_games": int(np.sum([player.games_played for player in players], dtype=np.int64)),
            "top_by_wins": self.top_by(players, "games_won"),
            "top_by_thola_received": self.top_by(players, "thola_received"),
            "top_by_losses": self.top_by(players, "games_lost"),
            "top_by_win_rate": sorted(ranked, key=lambda player: player.win_rate, reverse=True)[:LEADERBOARD_SIZE],
            "all_players": players,
        }
