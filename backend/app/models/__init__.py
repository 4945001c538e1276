from app.models.approved_email import ApprovedEmail
from app.models.photo import Photo
from app.models.slideshow import Slideshow, SlideshowPhoto
from app.models.tag import PhotoTag, Tag
from app.models.user import RefreshToken, User

__all__ = [
    "User",
    "RefreshToken",
    "ApprovedEmail",
    "Photo",
    "Tag",
    "PhotoTag",
    "Slideshow",
    "SlideshowPhoto",
]
