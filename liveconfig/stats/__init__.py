from .lifecycle import STATS_ENABLED_PROPERTY, RebindStatsLifecycle, configure_rebind_stats

__all__ = ["STATS_ENABLED_PROPERTY", "RebindStatsLifecycle", "configure_rebind_stats"]
