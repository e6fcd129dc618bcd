from .base import FileTransport, Transport
from .tcp import BrotherTcp
from .ftp import BrotherFtp
from .http import BrotherHttp
from .facade import Brother

__all__ = [
    "Transport",
    "FileTransport",
    "BrotherTcp",
    "BrotherFtp",
    "BrotherHttp",
    "Brother",
]
