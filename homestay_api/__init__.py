"""
homestay_api -- FastAPI surface of the homestay registration system.

Architecture position:
    Outermost ring.  Translates HTTP into calls on homestay_services and
    the kernel services, and the exception hierarchy back into HTTP.
    Nothing below this package imports it.
"""

from homestay_api.app import create_app

__all__ = ["create_app"]
