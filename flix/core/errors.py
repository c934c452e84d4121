from typing import Optional

class FlixError(Exception):
    """Base class for all Flix errors."""

class AuthenticationFailure(FlixError):
    """Bad credentials, a missing token, or a 401/403 from the media server."""

class NegotiationFailure(FlixError):
    """Playback could not be negotiated for an item."""

    def __init__(self, message: str, item_id: Optional[str] = None):
        super().__init__(message)
        self.item_id = item_id

LoadFailure = NegotiationFailure

class TransientFetchFailure(FlixError):
    """Catalog or image request failed; callers fall back to placeholders."""

class StreamingFailure(FlixError):
    """A fatal error reported by the adaptive-streaming client or the media surface."""

    def __init__(self, message: str, details: str = ""):
        super().__init__(message)
        self.details = details

    @classmethod
    def from_event(cls, event) -> "StreamingFailure":
        # Imported lazily, playback imports this module
        from .playback import ErrorType, MANIFEST_LOAD_ERRORS

        if event.error_type == ErrorType.NETWORK:
            if event.details in MANIFEST_LOAD_ERRORS:
                return ManifestLoadFailure(f"Manifest could not be loaded ({event.details})", event.details)
            return StreamingNetworkFailure(f"Network error while streaming ({event.details})", event.details)
        if event.error_type == ErrorType.MEDIA:
            return MediaDecodeFailure(f"Media could not be decoded ({event.details})", event.details)
        return FatalStreamingFailure(f"Unable to play this content ({event.details})", event.details)

class ManifestLoadFailure(StreamingFailure):
    pass

class StreamingNetworkFailure(StreamingFailure):
    pass

class MediaDecodeFailure(StreamingFailure):
    pass

class FatalStreamingFailure(StreamingFailure):
    pass
