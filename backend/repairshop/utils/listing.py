"""Paginated list responses with HTTP validators.

Every list endpoint answers ``{data, pagination}`` and sets ``ETag`` (a digest of
the page) plus ``Last-Modified`` (newest ``updated_at`` on the page). A client
repeating the request with ``If-None-Match`` or ``If-Modified-Since`` gets an
empty 304 when nothing it would see has changed.
"""
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Callable, Dict, Iterable, Optional, Tuple
import hashlib
import json

from flask import abort, make_response, request
from sqlalchemy.orm import Query

from repairshop.config.pagination import normalize_pagination

# HTTP dates have one-second resolution
TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def _utc_seconds(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        # SQLite hands back naive values
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def paginate(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    return q.offset(offset).limit(limit), q.count(), limit, offset


def page_etag(rows: list, total: int, limit: int, offset: int) -> str:
    # row content is hashed too, timestamps alone miss same-second edits
    body = json.dumps({'rows': rows, 'total': total, 'limit': limit, 'offset': offset}, sort_keys=True, default=str)
    return hashlib.sha256(body.encode()).hexdigest()[:32]


def newest(items: Iterable[Any], attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [_utc_seconds(getattr(i, attr)) for i in items if getattr(i, attr, None)]
    return max(stamps) if stamps else None


def _parse_http_time(raw: str) -> Optional[datetime]:
    try:
        return _utc_seconds(datetime.fromisoformat(raw.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return _utc_seconds(parsedate_to_datetime(raw))
    except (TypeError, ValueError):
        return None


def not_modified(etag: str, last_modified: Optional[datetime]) -> bool:
    """If-None-Match wins over If-Modified-Since when both are sent."""
    inm = request.headers.get('If-None-Match')
    if inm:
        return inm.strip().strip('"') == etag
    ims = request.headers.get('If-Modified-Since')
    if ims and last_modified:
        since = _parse_http_time(ims)
        return since is not None and last_modified <= since + TIMESTAMP_TOLERANCE
    return False


def list_response(q: Query, serialize: Callable[[Any], Dict[str, Any]], ts_attr: str = 'updated_at'):
    """Paginate q, serialize rows and answer conditional requests in one step."""
    paged, total, limit, offset = paginate(q)
    items = paged.all()
    rows = [serialize(i) for i in items]
    etag = page_etag(rows, total, limit, offset)
    last_modified = newest(items, ts_attr)
    if not_modified(etag, last_modified):
        resp = make_response('', 304)
    else:
        resp = make_response({
            'data': rows,
            'pagination': {'total': total, 'limit': limit, 'offset': offset, 'returned': len(rows)},
        })
    resp.headers['ETag'] = etag
    if last_modified:
        resp.headers['Last-Modified'] = format_datetime(last_modified, usegmt=True)
    return resp


__all__ = ['list_response', 'paginate', 'page_etag', 'newest', 'not_modified']
