"""Select and publish one channel's entry from an Icecast status document."""

from typing import Any, Dict, List

from metadata_sync.errors import ChannelNotFound, ParseError


def _sources(document: Any) -> List[Dict[str, Any]]:
    """Return the ``icestats.source`` entries as a list.

    Icecast emits a single object instead of a one-element list when only
    one mount is live, and omits the key entirely when none is.

    Raises:
        ParseError: If the document is not an Icecast status object.
    """
    if not isinstance(document, dict) or not isinstance(document.get("icestats"), dict):
        raise ParseError("Upstream status document has no 'icestats' object")

    sources = document["icestats"].get("source")
    if sources is None:
        return []
    if isinstance(sources, dict):
        return [sources]
    if isinstance(sources, list):
        return [source for source in sources if isinstance(source, dict)]
    raise ParseError(f"Unexpected 'icestats.source' type: {type(sources).__name__}")


def select_source(document: Any, source_name: str) -> Dict[str, Any]:
    """Find the entry whose ``server_name`` matches ``source_name``.

    Raises:
        ParseError: If the document is malformed.
        ChannelNotFound: If no entry matches (channel off air).
    """
    for source in _sources(document):
        if source.get("server_name") == source_name:
            return source
    raise ChannelNotFound(f"No source named '{source_name}' in upstream status")


def rewrite_listen_url(source: Dict[str, Any], public_listen_url: str) -> Dict[str, Any]:
    """Return a copy of ``source`` pointing listeners at the public stream."""
    published = dict(source)
    published["listenurl"] = public_listen_url
    return published


def normalize(document: Any, source_name: str, public_listen_url: str) -> Dict[str, Any]:
    return rewrite_listen_url(select_source(document, source_name), public_listen_url)
