from typing import Any, Dict, Iterable, List, Union


def truncate_long_strings(
    data: Union[Dict, List, str, Any],
    max_length: int = 66,
    drop_keys: Iterable[str] = ("logsBloom",),
) -> Union[Dict, List, str, Any]:
    """
    Recursively shorten long string values in a JSON-ready structure.

    Block payloads carry a few very long hex fields (logs bloom, extra data,
    transaction lists) that are noise in a dashboard view. Strings longer
    than ``max_length`` are cut and suffixed with ``...``; keys listed in
    ``drop_keys`` are removed entirely; lists longer than ``max_length``
    entries are replaced by their length.

    Args:
        data: Any JSON data (dict, list, string, ...)
        max_length: Maximum string length, defaults to a 32 byte hex hash
        drop_keys: Mapping keys to leave out

    Returns:
        The shortened data
    """
    drop = set(drop_keys)
    if isinstance(data, dict):
        return {
            key: truncate_long_strings(value, max_length, drop)
            for key, value in data.items()
            if key not in drop
        }

    elif isinstance(data, (list, tuple)):
        if len(data) > max_length:
            return len(data)
        return [truncate_long_strings(item, max_length, drop) for item in data]

    elif isinstance(data, str):
        if len(data) > max_length:
            return data[:max_length] + "..."
        return data

    # numbers, booleans and None pass through
    else:
        return data
