# pscore/services/exceptions.py

class ScoreError(Exception):
    """Base class for every error this application raises."""

class ValidationError(ScoreError):
    """Bad local input, e.g. an invalid username. Never retried."""

class GenerationInProgress(ScoreError):
    pass

class LLMServiceError(ScoreError):
    """The remote model call did not produce a usable report."""

class MalformedResponse(LLMServiceError):
    def __init__(self, message: str = "The AI returned a malformed response. Please try again."):
        super().__init__(message)

class GenerationFailed(LLMServiceError):
    def __init__(self, message: str = "Failed to get a valid score from the AI model."):
        super().__init__(message)

class LeaderboardLoadFailed(ScoreError):
    pass

class PersistenceCorrupt(ScoreError):
    """A stored value could not be decoded. Treated as absent by callers."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"Stored value for '{key}' is corrupt: {reason}")
        self.key = key

class StorageUnavailable(ScoreError):
    """The durable store could not be read. Unlike a missing key this is not "no prior state"."""
