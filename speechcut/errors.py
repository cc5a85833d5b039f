"""Error taxonomy shared by every pipeline stage."""


class PipelineError(Exception):
    """Base class for failures recorded in ``PipelineState.last_error``."""

    kind = "PipelineError"


class UnreadableSource(PipelineError):
    """The input could not be opened or decoded."""

    kind = "UnreadableSource"


class UnsupportedFormat(PipelineError):
    """The container opened but lacks what the stage needs (e.g. audio)."""

    kind = "UnsupportedFormat"


class EmptyAudio(PipelineError):
    """Zero-length or silent audio handed to the transcriber."""

    kind = "EmptyAudio"


class TranscriptionEngineFailure(PipelineError):
    kind = "TranscriptionEngineFailure"


class NoCutPoints(PipelineError):
    kind = "NoCutPoints"


class IndexOutOfRange(PipelineError, IndexError):
    kind = "IndexOutOfRange"


class OutputWriteFailure(PipelineError):
    kind = "OutputWriteFailure"


class EncodingFailure(PipelineError):
    kind = "EncodingFailure"


class Cancelled(PipelineError):
    kind = "Cancelled"


class PipelineBusy(PipelineError):
    """A stage was started while another one is still running."""

    kind = "PipelineBusy"


class InvalidTransition(PipelineError):
    """The requested operation is not allowed from the current stage."""

    kind = "InvalidTransition"


def raise_if_cancelled(cancel) -> None:
    """Raise Cancelled if the given threading.Event (or None) is set."""
    if cancel is not None and cancel.is_set():
        raise Cancelled("Operation cancelled")
