from __future__ import annotations
from typing import Any, Dict, Mapping
from flask import abort


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Narrow query by the query-string params named in specs.

    Each spec may carry:
      op      callable(query, value) -> query (required)
      coerce  callable turning the raw string into a value; failures are 400
      choices collection the (coerced) value must belong to

    Absent and empty params are skipped.
    """
    for name, spec in specs.items():
        raw = params.get(name)
        if raw is None or raw == '':
            continue
        value = raw
        if 'coerce' in spec:
            try:
                value = spec['coerce'](raw)
            except (TypeError, ValueError):
                abort(400, description=f'{name} is invalid')
        choices = spec.get('choices')
        if choices is not None and value not in choices:
            abort(400, description=f"{name} must be one of: {', '.join(map(str, choices))}")
        query = spec['op'](query, value)
    return query


__all__ = ['apply_filters']
