"""
GitHub Hook Sync — keep local git mirrors current from push notifications.

A push notification names a repository; the matching project's git
repositories are cloned or fetched into bare mirrors and the changeset
indexer is told to pick up the new commits.
"""

__version__ = "2.1.0"
