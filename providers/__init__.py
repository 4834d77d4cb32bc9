"""
Web providers package.
Currently the Spotify Web API client used for album art search.
"""
from .spotify_api import AccessToken, ArtFailure, SpotifyWebAPI

__all__ = [
    'AccessToken',
    'ArtFailure',
    'SpotifyWebAPI',
]
