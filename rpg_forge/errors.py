"""Exception types shared across the creation flow.

Every one of these is caught by the orchestrator and turned into an
assistant message; none of them reach the HTTP layer.
"""


class ForgeError(Exception):
    """Base class for creation-flow failures."""


class ExtractionFailure(ForgeError):
    """A field transform or validator rejected a matched value."""


class GenerationFailure(ForgeError, RuntimeError):
    """The text-generation backend failed or timed out."""


class GenerationCancelled(GenerationFailure):
    """Generation was stopped through the cancel signal."""


class StreamingFailure(ForgeError):
    """Generation failed after tokens had already been streamed."""


class PersistenceFailure(ForgeError):
    """The entity store could not create or update an entity."""
