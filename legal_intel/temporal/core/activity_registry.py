from typing import Callable, Dict, List, Optional


class ActivityRegistry:
    """Activities the worker serves, grouped by category."""

    _activities: Dict[str, Dict] = {}

    @classmethod
    def register(cls, category: str, name: Optional[str] = None):
        """Decorator to register an activity function under its Temporal name."""
        def decorator(activity_func: Callable):
            activity_name = name or activity_func.__name__
            if activity_name in cls._activities:
                raise ValueError(f"Activity {activity_name!r} registered twice")
            cls._activities[activity_name] = {"func": activity_func, "category": category}
            return activity_func
        return decorator

    @classmethod
    def get_activities(cls, category: Optional[str] = None) -> List[Callable]:
        return [
            entry["func"]
            for entry in cls._activities.values()
            if category is None or entry["category"] == category
        ]

    @classmethod
    def names(cls) -> List[str]:
        return sorted(cls._activities)
