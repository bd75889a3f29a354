"""
Service Layer Package

- BadgeService: badge passes, progress, listing and sharing
- Notifications: unlock notification requests
- ServiceContainer: lazy wiring of store, notifier and services
"""

__all__ = ["badge_service", "notifications", "container"]
