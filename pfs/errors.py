class PFSError(Exception):
    """Base class for PFS-specific errors."""


# Header/index parsing
class FormatError(PFSError):
    pass


class VersionError(PFSError):
    pass


class TruncatedArchiveError(PFSError):
    pass


class EncodingError(PFSError):
    pass


# Filesystem layout
class PathConflictError(PFSError):
    pass


# Packing
class ArchiveTooLargeError(PFSError):
    pass


class SourceChangedError(PFSError):
    pass
