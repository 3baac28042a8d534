"""QuestCanvas: graph editing core for branching game quests."""

__version__ = "0.1.0"
