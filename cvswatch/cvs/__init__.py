"""Bindings to the ``cvs`` command-line client.

Usage
-----
Discover the client and read a working copy's status::

    from cvswatch.cvs import CvsClient, CvsFinder

    info = await CvsFinder().find_cvs()
    client = CvsClient(info.path, version=info.version)
    result = await client.open("/ws/proj").get_status(limit=100)

"""

from __future__ import annotations

from cvswatch.cvs.client import (
    DEFAULT_STATUS_LIMIT,
    METADATA_DIR,
    CvsClient,
    ExecOptions,
    RepositoryHandle,
)
from cvswatch.cvs.finder import CvsClientInfo, CvsFinder, parse_version
from cvswatch.cvs.status_parser import CvsStatusParser, FileStatusEntry, StatusResult

__all__ = [
    "DEFAULT_STATUS_LIMIT",
    "METADATA_DIR",
    "CvsClient",
    "CvsClientInfo",
    "CvsFinder",
    "CvsStatusParser",
    "ExecOptions",
    "FileStatusEntry",
    "RepositoryHandle",
    "StatusResult",
    "parse_version",
]
