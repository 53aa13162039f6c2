"""Subject identifier extraction from player save-file names."""

import os


def subject_id_from_path(path: str) -> str:
    """Return the base name of *path* with its final extension stripped.

    ``/saves/76561198000000001.json`` → ``76561198000000001``.  A name with
    no extension, or one that is nothing but an extension (``.json``), is
    returned unchanged.  An empty string means *path* is not a subject file.
    """
    base = os.path.basename(path)
    dot = base.rfind(".")
    if dot <= 0:
        return base
    return base[:dot]
