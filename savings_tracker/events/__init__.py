from .bus import ASSET_UPDATED, GOAL_UPDATED, EventBus

__all__ = ["ASSET_UPDATED", "GOAL_UPDATED", "EventBus"]
