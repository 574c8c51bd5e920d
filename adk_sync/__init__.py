"""adk-sync - Feature state synchronization engine."""

# No imports at package level to avoid circular import issues
# Import modules directly where needed

__version__ = "0.1.0"
