class ConfigurationError(Exception):
    """The workflow or job list cannot be turned into a run."""
