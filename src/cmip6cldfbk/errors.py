class PipelineError(Exception):
    pass


class MissingInputError(PipelineError, FileNotFoundError):
    """An input file required by a pipeline step does not exist."""


class RecordAlignmentError(PipelineError, ValueError):
    """Two ensemble collections do not share the same model records in the same order."""
