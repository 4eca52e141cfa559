"""
Transport connections: where files are fetched from and pushed to.
"""

from feedmover.transports.base import BaseTransportConnection
from feedmover.transports.filesystem import FilesystemConnection
from feedmover.transports.manager import TransportManager
from feedmover.transports.s3 import S3Connection
from feedmover.transports.sftp import SFTPConnection

__all__ = [
    "BaseTransportConnection",
    "FilesystemConnection",
    "SFTPConnection",
    "S3Connection",
    "TransportManager",
]
