"""Device parameter store.

This module provides the DeviceModel class, the path-keyed parameter store
shared by the session engine, the RPC method handlers and the bulk-data
reporter, together with the ParameterRecord type held for every path and a
loader for YAML/JSON data-model files.

Paths are dotted TR-069 names. Leaf parameters look like
``InternetGatewayDevice.DeviceInfo.SerialNumber``; object (interior) nodes end
with a dot, e.g. ``InternetGatewayDevice.LANDevice.1.Hosts.Host.1.``.
"""

import json
import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Union

import yaml

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class DataModelError(Exception):
    """Base exception for data model errors."""

    pass


class ParameterNotFoundError(DataModelError):
    """Requested parameter path does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Parameter not found: {path}")


class ParameterNotWritableError(DataModelError):
    """Attempt to write a read-only parameter."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Parameter is not writable: {path}")


# =============================================================================
# Parameter Record
# =============================================================================


@dataclass(frozen=True)
class ParameterRecord:
    """A single entry of the device parameter store.

    Attributes:
        writable: Whether the ACS may change the value.
        value: Current value as a string (empty for object nodes).
        type: XSD type name (e.g. ``xsd:string``), None for object nodes.

    Example:
        >>> record = ParameterRecord(writable=True, value="300", type="xsd:unsignedInt")
        >>> record.assign("600").value
        '600'
    """

    writable: bool = False
    value: str = ""
    type: Optional[str] = None

    @property
    def is_object(self) -> bool:
        """Check if the record describes an object node rather than a leaf."""
        return self.type is None

    def with_value(self, value: Any) -> "ParameterRecord":
        """Return a copy holding a new value, ignoring the writable flag.

        Used for values changed by the device itself (simulated telemetry,
        provisioning, serial number injection).
        """
        return replace(self, value=str(value))

    def assign(self, value: Any, path: str = "") -> "ParameterRecord":
        """Return a copy holding a new value written by the ACS.

        Args:
            value: New parameter value.
            path: Parameter path, used for the error message.

        Raises:
            ParameterNotWritableError: If the record is read-only.
        """
        if not self.writable:
            raise ParameterNotWritableError(path)
        return self.with_value(value)

    @classmethod
    def from_raw(cls, raw: Any) -> "ParameterRecord":
        """Build a record from the mapping or array form used in data-model files.

        Accepted forms:
            ``{"writable": true, "value": "1", "type": "xsd:boolean"}``
            ``[true, "1", "xsd:boolean"]`` (value and type optional)
        """
        if isinstance(raw, ParameterRecord):
            return raw
        if isinstance(raw, Mapping):
            value = raw.get("value")
            return cls(
                writable=bool(raw.get("writable", False)),
                value="" if value is None else _to_text(value),
                type=raw.get("type"),
            )
        if isinstance(raw, (list, tuple)):
            if not raw:
                raise DataModelError("Empty parameter record")
            value = raw[1] if len(raw) > 1 else ""
            return cls(
                writable=bool(raw[0]),
                value="" if value is None else _to_text(value),
                type=raw[2] if len(raw) > 2 else None,
            )
        raise DataModelError(f"Unsupported parameter record: {raw!r}")


def _to_text(value: Any) -> str:
    # YAML turns true/false into bools; the data model stores xsd text
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Device Model
# =============================================================================


class DeviceModel:
    """Path-keyed device parameter store.

    Reads go through get()/get_value(); writes coming from the ACS go through
    set_value(), which enforces the writable flag, while device-internal
    updates use update_value() or put().

    Example:
        >>> model = DeviceModel({
        ...     "Device.DeviceInfo.SerialNumber": ParameterRecord(False, "ABC", "xsd:string"),
        ... })
        >>> model.get_value("Device.DeviceInfo.SerialNumber")
        'ABC'
    """

    def __init__(self, parameters: Optional[Mapping[str, Any]] = None):
        self._params: Dict[str, ParameterRecord] = {}
        self._sorted_paths: Optional[List[str]] = None
        self._factory: Optional[Dict[str, ParameterRecord]] = None
        for path, raw in (parameters or {}).items():
            self._params[path] = ParameterRecord.from_raw(raw)

    def __contains__(self, path: object) -> bool:
        return path in self._params

    def __getitem__(self, path: str) -> ParameterRecord:
        try:
            return self._params[path]
        except KeyError:
            raise ParameterNotFoundError(path) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths())

    def __len__(self) -> int:
        return len(self._params)

    def get(self, path: str) -> Optional[ParameterRecord]:
        """Get the record for a path, or None if absent."""
        return self._params.get(path)

    def get_value(self, path: str, default: Optional[str] = None) -> Optional[str]:
        """Get the value stored at a path, or default if absent."""
        record = self._params.get(path)
        return record.value if record is not None else default

    def first_existing(self, *paths: str) -> Optional[str]:
        """Return the first of the given paths present in the model.

        Used where two data-model generations (``Device.`` and
        ``InternetGatewayDevice.``) name the same parameter differently.
        """
        for path in paths:
            if path in self._params:
                return path
        return None

    def set_value(self, path: str, value: Any) -> ParameterRecord:
        """Write a parameter on behalf of the ACS.

        Raises:
            ParameterNotFoundError: If the path does not exist.
            ParameterNotWritableError: If the parameter is read-only.
        """
        record = self[path]
        updated = record.assign(value, path)
        self._params[path] = updated
        return updated

    def update_value(self, path: str, value: Any) -> ParameterRecord:
        """Change a parameter value from inside the device.

        Raises:
            ParameterNotFoundError: If the path does not exist.
        """
        updated = self[path].with_value(value)
        self._params[path] = updated
        return updated

    def put(self, path: str, record: ParameterRecord) -> None:
        """Create or replace a record."""
        if path not in self._params:
            self._sorted_paths = None
        self._params[path] = record

    def paths(self, prefix: str = "") -> List[str]:
        """Get sorted paths, optionally restricted to a prefix."""
        if self._sorted_paths is None:
            self._sorted_paths = sorted(self._params)
        if not prefix:
            return list(self._sorted_paths)
        return [p for p in self._sorted_paths if p.startswith(prefix)]

    def instances(self, object_path: str) -> List[int]:
        """List the instance numbers present under a multi-instance object.

        Args:
            object_path: Table path ending with a dot, e.g.
                ``InternetGatewayDevice.LANDevice.1.Hosts.Host.``.

        Returns:
            Sorted instance numbers.
        """
        pattern = re.compile(re.escape(object_path) + r"(\d+)\.")
        numbers = set()
        for path in self.paths(object_path):
            match = pattern.match(path)
            if match:
                numbers.add(int(match.group(1)))
        return sorted(numbers)

    def add_instance(self, object_path: str, number: Optional[int] = None) -> int:
        """Create an empty writable instance node under a table.

        Args:
            object_path: Table path ending with a dot.
            number: Instance number, defaults to highest existing + 1.

        Returns:
            The new instance number.
        """
        if number is None:
            existing = self.instances(object_path)
            number = existing[-1] + 1 if existing else 1
        self.put(f"{object_path}{number}.", ParameterRecord(writable=True))
        return number

    def delete_object(self, path: str) -> int:
        """Delete an object node and everything below it.

        Returns:
            Number of removed records.

        Raises:
            ParameterNotFoundError: If no record exists under the path.
        """
        doomed = self.paths(path)
        if not doomed:
            raise ParameterNotFoundError(path)
        for p in doomed:
            del self._params[p]
        self._sorted_paths = None
        return len(doomed)

    def mark_factory_defaults(self) -> None:
        """Remember the current content as the factory-default state."""
        self._factory = dict(self._params)

    def reset_to_factory(self) -> bool:
        """Restore the content saved by mark_factory_defaults().

        Returns:
            True if a factory state was restored, False if none was saved.
        """
        if self._factory is None:
            return False
        self._params = dict(self._factory)
        self._sorted_paths = None
        return True

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Export the model in the mapping form accepted by the loader."""
        return {
            path: {"writable": r.writable, "value": r.value, "type": r.type}
            for path, r in ((p, self._params[p]) for p in self.paths())
        }


def load_device_model(source: Union[str, Path]) -> DeviceModel:
    """Load a device model from a YAML or JSON file.

    The file holds a mapping of parameter path to parameter record in
    either the mapping or the array form (see ParameterRecord.from_raw).

    Args:
        source: Path to the data-model file.

    Returns:
        Populated DeviceModel.

    Raises:
        DataModelError: If the file does not hold a mapping.
    """
    source = Path(source)
    text = source.read_text(encoding="utf-8")
    if source.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)

    if not isinstance(data, dict):
        raise DataModelError(f"Data model file must contain a mapping: {source}")

    model = DeviceModel(data)
    logger.debug(f"Loaded {len(model)} parameters from {source}")
    return model
