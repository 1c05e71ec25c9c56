from .synthesis import (
    build_diary_messages,
    build_global_rules,
    build_initial_profile_messages,
    build_profile_update_messages,
)

__all__ = [
    "build_diary_messages",
    "build_global_rules",
    "build_initial_profile_messages",
    "build_profile_update_messages",
]
