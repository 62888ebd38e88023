"""Error kinds shared by the store, the blob client and the HTTP layer.

Each error carries the HTTP status it maps to. `UpstreamUnavailable` is raised
by network collaborators and is normally absorbed (logged) by the caller rather
than surfaced.
"""


class GalleryError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(GalleryError):
    status_code = 404


class InvalidInput(GalleryError):
    status_code = 400


class Unauthorized(GalleryError):
    status_code = 401


class UpstreamUnavailable(GalleryError):
    status_code = 502


class Internal(GalleryError):
    status_code = 500
