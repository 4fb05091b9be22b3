"""
GitHub collection for the issue sync.

- github_issues.py: search and repository metadata client
- retry_strategy.py: retry policy for transient API failures
"""

__version__ = "1.0.0"
