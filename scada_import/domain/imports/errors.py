"""
Exception taxonomy for the SCADA import pipeline.

Per-file failures derive from ScadaImportError and carry the offending file
name so the orchestrator can attach them to the right FileEntry. Registry
misuse (bad transitions, association clashes) is reported separately because
it signals a caller bug rather than a bad file.
"""
from typing import Optional


class ScadaImportError(Exception):
    """Base exception for per-file import failures."""

    def __init__(self, message: str, file_name: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.file_name = file_name


class UnsupportedFormat(ScadaImportError):
    """Raised when the decoder does not recognise the file kind."""
    pass


class DecodeFailed(ScadaImportError):
    """Raised when a recognised file cannot be read (corrupt archive, bad encoding)."""
    pass


class UploadFailed(ScadaImportError):
    """Raised when the storage collaborator rejects or fails an upload."""
    pass


class CommitFailed(ScadaImportError):
    """Raised when the commit collaborator rejects or fails a commit."""
    pass


class AssociationInUse(Exception):
    """Raised when an association id is already held by another file in the batch."""

    def __init__(self, association_id: str, holder_index: int):
        super().__init__(
            f"Association '{association_id}' is already assigned to file #{holder_index + 1}"
        )
        self.association_id = association_id
        self.holder_index = holder_index


class InvalidStatusTransition(Exception):
    """Raised when a FileEntry is asked to move to a status it cannot reach."""
    pass


class BatchClosed(Exception):
    """Raised when a closed (discarded) batch is asked to change."""
    pass


class ImportInProgress(Exception):
    """Raised when a batch is asked to change while its files are being imported."""
    pass
