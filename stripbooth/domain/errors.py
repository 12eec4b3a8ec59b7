# stripbooth/domain/errors.py


class BoothError(Exception):
    """Base class for every error raised by the compositing core."""


class AssetLoadFailure(BoothError):
    """A frame or photo could not be fetched or decoded."""


class NoUsableRegions(BoothError):
    """Frame mode produced zero slots."""


class InsufficientPhotos(BoothError):
    """Fewer photographs than the template declares."""


class ComposeCancelled(BoothError):
    """The session was abandoned while a composing pass was in flight."""


class UnknownTemplate(BoothError):
    pass


class UnknownFilter(BoothError):
    pass


class SessionNotFound(BoothError):
    pass


class StickerNotFound(BoothError):
    pass


class InvalidStickerValue(BoothError):
    pass


class FlattenInProgress(BoothError):
    pass


class SessionNotReady(BoothError):
    """The session has no base composite yet."""
