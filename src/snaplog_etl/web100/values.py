"""Value sink used to collect decoded web100 variables.

``ValueMap`` is a plain ``dict`` with the three setter methods the decoder
writes through, plus path helpers used when fixing up assembled rows.
Nested sections are themselves ``ValueMap`` instances.
"""

from typing import Any, Optional, Sequence, Tuple


class ValueMap(dict):
    """Nested mapping that accepts decoded values.

    Keys passed to the setters may be flat (``"CurCwnd"``) or dotted
    (``"connection_spec.server_ip"``); dotted keys create nested maps.
    The last write to a key wins.

    Examples
    --------
    >>> row = ValueMap()
    >>> row.set_string("connection_spec.server_ip", "10.0.0.1")
    >>> row["connection_spec"]["server_ip"]
    '10.0.0.1'
    """

    def set_int64(self, name: str, value: int) -> None:
        self._set(name, int(value))

    def set_string(self, name: str, value: str) -> None:
        self._set(name, str(value))

    def set_bool(self, name: str, value: bool) -> None:
        self._set(name, bool(value))

    def _set(self, name: str, value: Any) -> None:
        *parents, leaf = name.split(".")
        target = self.get_map(parents) if parents else self
        target[leaf] = value

    def get_map(self, path: Sequence[str]) -> "ValueMap":
        """Return the nested map at ``path``, creating empty maps as needed."""
        current = self
        for key in path:
            child = current.get(key)
            if not isinstance(child, dict):
                child = ValueMap()
                current[key] = child
            elif not isinstance(child, ValueMap):
                child = ValueMap(child)
                current[key] = child
            current = child
        return current

    def get_path(self, path: Sequence[str]) -> Tuple[Optional[Any], bool]:
        """Look up a nested value without creating anything.

        Returns
        -------
        tuple
            ``(value, found)``. ``found`` is False when any key along the
            path is missing or the stored value is None.
        """
        current: Any = self
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return None, False
            current = current[key]
        return current, current is not None

    def get_int64(self, path: Sequence[str]) -> Tuple[Optional[int], bool]:
        value, found = self.get_path(path)
        if not found or isinstance(value, bool) or not isinstance(value, int):
            return None, False
        return value, True

    def get_string(self, path: Sequence[str]) -> Tuple[Optional[str], bool]:
        value, found = self.get_path(path)
        if not found or not isinstance(value, str):
            return None, False
        return value, True

    def substitute_string(self, only_if_unset: bool, target: Sequence[str],
                          source: Sequence[str]) -> None:
        """Copy a string from ``source`` to ``target`` within this map.

        Nothing happens when the source is missing. With ``only_if_unset``
        an existing target value is left alone.
        """
        value, ok = self.get_string(source)
        if ok:
            self._substitute(only_if_unset, target, value)

    def substitute_int64(self, only_if_unset: bool, target: Sequence[str],
                         source: Sequence[str]) -> None:
        """Integer counterpart of :meth:`substitute_string`."""
        value, ok = self.get_int64(source)
        if ok:
            self._substitute(only_if_unset, target, value)

    def _substitute(self, only_if_unset: bool, target: Sequence[str], value: Any) -> None:
        *parents, leaf = target
        parent = self.get_map(parents)
        if only_if_unset and parent.get(leaf) is not None:
            return
        parent[leaf] = value
