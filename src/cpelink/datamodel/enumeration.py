"""Bounded contiguous enumeration over indexed parameter paths.

Several parts of the data model are arrays laid out as numbered instances
(``Profile.1``, ``Profile.2``, ...). Readers walk them from the first index
and stop at the first gap, never looking further even if later indices exist.
"""

from typing import Iterator, Tuple

from .store import DeviceModel, ParameterRecord


def enumerate_contiguous(
    model: DeviceModel,
    template: str,
    first: int = 1,
    last: int = 5,
) -> Iterator[Tuple[int, ParameterRecord]]:
    """Yield records for consecutive indices until the first missing one.

    Args:
        model: Device model to read.
        template: Path template with one ``{}`` placeholder for the index,
            e.g. ``InternetGatewayDevice.BulkData.Profile.{}.Enable``.
        first: First index to probe.
        last: Last index to probe (inclusive).

    Yields:
        (index, record) tuples in ascending index order.

    Example:
        >>> for i, record in enumerate_contiguous(model, "X.Profile.{}.Enable", 1, 5):
        ...     print(i, record.value)
    """
    for index in range(first, last + 1):
        record = model.get(template.format(index))
        if record is None:
            return
        yield index, record
