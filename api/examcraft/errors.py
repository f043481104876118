"""
Error Taxonomy for ExamCraft
Every message is the notice shown to the teacher.
"""


class ExamCraftError(Exception):
    """Base class for all user-facing failures."""


class GenerationError(ExamCraftError):
    """The provider failed to produce a valid exam."""


class CorrectionError(ExamCraftError):
    """The provider failed to produce a valid correction."""


class ExportError(ExamCraftError):
    """The exam could not be exported to a document."""


class UploadRejectedError(ExamCraftError):
    """A reference upload was not a PDF."""


class NavigationError(ExamCraftError):
    """A view was requested without the state it needs."""


class OperationInProgressError(ExamCraftError):
    """The same operation is already running."""


class ExamNotFoundError(ExamCraftError):
    """No exam or question matches the given identifier."""
