"""Refresh state held by the dashboard and the sink that updates it."""
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from blockdash.errors import ParseError, PollerConflictError
from blockdash.utils.truncation import truncate_long_strings

if TYPE_CHECKING:
    from blockdash.ethereum.contract import ContractHandle

logger = logging.getLogger(__name__)

Subscriber = Callable[["RefreshState"], None]

_REQUIRED_BLOCK_FIELDS = ("number", "hash", "parentHash", "timestamp")


def _to_json_value(value: Any) -> Any:
    """Convert web3 payload values (HexBytes, AttributeDict, ...) to plain JSON types."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {key: _to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


@dataclass(frozen=True)
class BlockSnapshot:
    """A block as fetched from the node. Never mutated once built."""

    number: int
    timestamp: int
    hash: str
    parent_hash: str
    fields: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_block_data(cls, data: Any) -> "BlockSnapshot":
        """Build a snapshot from a ``eth_getBlockBy*`` result.

        Args:
            data: Block mapping as returned by web3

        Returns:
            The block snapshot

        Raises:
            ParseError: If the payload is not a block or lacks required fields
        """
        if not isinstance(data, Mapping):
            raise ParseError(f"Expected a block object, got {type(data).__name__}")

        missing = [key for key in _REQUIRED_BLOCK_FIELDS if data.get(key) is None]
        if missing:
            raise ParseError(f"Block payload is missing {', '.join(missing)}")

        number = data["number"]
        timestamp = data["timestamp"]
        for name, value in (("number", number), ("timestamp", timestamp)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ParseError(f"Block {name} must be a non-negative integer, got {value!r}")

        plain = _to_json_value(data)
        extra = {key: value for key, value in plain.items() if key not in _REQUIRED_BLOCK_FIELDS}
        return cls(
            number=number,
            timestamp=timestamp,
            hash=plain["hash"],
            parent_hash=plain["parentHash"],
            fields=MappingProxyType(extra),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.fields)
        result.update({
            "number": self.number,
            "timestamp": self.timestamp,
            "hash": self.hash,
            "parentHash": self.parent_hash,
        })
        return result


@dataclass(frozen=True)
class RefreshState:
    """Latest observed chain data. ``None`` means not fetched yet."""

    latest_block_number: Optional[int] = None
    last_update_time: Optional[datetime] = None
    latest_block: Optional[BlockSnapshot] = None
    contract: Optional["ContractHandle"] = None

    def to_dict(self, compact: bool = False) -> Dict[str, Any]:
        """Convert the state to a JSON-ready dictionary.

        Args:
            compact: Shorten long hex values for display

        Returns:
            Dictionary view of the state
        """
        block = self.latest_block.to_dict() if self.latest_block else None
        if block is not None and compact:
            block = truncate_long_strings(block)
        return {
            "latest_block_number": self.latest_block_number,
            "last_update_time": self.last_update_time.isoformat() if self.last_update_time else None,
            "latest_block": block,
            "contract": self.contract.describe() if self.contract else None,
        }


_STATE_FIELDS = frozenset(f.name for f in dataclasses.fields(RefreshState))


class RefreshSink:
    """Holds the current refresh state and notifies subscribers of changes.

    The state object is immutable and swapped in with a single assignment,
    so readers (event loop callbacks or server threads) always see either
    the previous or the next complete state.
    """

    def __init__(self, initial: Optional[RefreshState] = None):
        self._state = initial or RefreshState()
        self._subscribers: List[Subscriber] = []
        self._owner: Optional[object] = None

    @property
    def state(self) -> RefreshState:
        return self._state

    def update(self, **fields: Any) -> RefreshState:
        """Merge ``fields`` into the state and notify subscribers.

        Args:
            **fields: ``RefreshState`` field values to replace

        Returns:
            The new state

        Raises:
            TypeError: On unknown field names
            ValueError: If the block number and update time are not given together
        """
        unknown = set(fields) - _STATE_FIELDS
        if unknown:
            raise TypeError(f"Unknown refresh state fields: {', '.join(sorted(unknown))}")
        if ("latest_block_number" in fields) != ("last_update_time" in fields):
            raise ValueError("latest_block_number and last_update_time must be updated together")

        previous = self._state
        new_number = fields.get("latest_block_number")
        if (
            new_number is not None
            and previous.latest_block_number is not None
            and new_number < previous.latest_block_number
        ):
            logger.warning(
                f"Block height went back from {previous.latest_block_number} to {new_number}"
            )

        self._state = dataclasses.replace(previous, **fields)
        self._notify(self._state)
        return self._state

    def subscribe(self, callback: Subscriber) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    @property
    def subscribers(self) -> Tuple[Subscriber, ...]:
        return tuple(self._subscribers)

    def _notify(self, state: RefreshState) -> None:
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception(f"Refresh subscriber {callback!r} failed")

    def claim(self, owner: object) -> None:
        """Register ``owner`` as the only writer of this sink.

        Raises:
            PollerConflictError: If another owner holds the sink
        """
        if self._owner is not None and self._owner is not owner:
            raise PollerConflictError(f"Refresh sink is already driven by {self._owner!r}")
        self._owner = owner

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None

    @property
    def owner(self) -> Optional[object]:
        return self._owner
