"""Decoding of interactive-action payloads.

Interactive button clicks arrive over HTTP, either as a JSON body or as a
form body whose ``payload`` field holds JSON. Decoding happens before the
router sees the event, so a missing field never reaches a handler.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from chatroute.core.errors import ActionDecodeError
from chatroute.core.models import Action

logger = logging.getLogger(__name__)


def _lookup(payload: Mapping[str, Any], path: Sequence[Union[str, int]]) -> Optional[str]:
    node: Any = payload
    for key in path:
        try:
            node = node[key]
        except (KeyError, IndexError, TypeError):
            return None
    return node if isinstance(node, str) else None


FIELDS: Dict[str, Sequence[Union[str, int]]] = {
    "user_id": ("user", "id"),
    "action_name": ("actions", 0, "name"),
    "action_value": ("actions", 0, "value"),
    "channel_id": ("channel", "id"),
    "message_timestamp": ("message_ts",),
    "callback_id": ("callback_id",),
}


def decode_action_payload(data: Union[str, Mapping[str, Any]]) -> Action:
    """Decode an interactive-action payload into an Action event.

    Args:
        data: JSON text, the decoded JSON object, or a form mapping whose
            ``payload`` field holds the JSON text

    Returns:
        The decoded Action

    Raises:
        ActionDecodeError: If the payload is not JSON or a field is missing
    """
    if isinstance(data, Mapping) and isinstance(data.get("payload"), str):
        data = data["payload"]
    if isinstance(data, str):
        logger.debug("Received action payload: %s", data)
        try:
            data = json.loads(data)
        except ValueError as e:
            raise ActionDecodeError(f"Action payload is not valid JSON: {e}") from e
    if not isinstance(data, Mapping):
        raise ActionDecodeError("Action payload must be a JSON object")

    values = {}
    for field_name, path in FIELDS.items():
        value = _lookup(data, path)
        if value is None:
            raise ActionDecodeError(f"Action payload is missing {'.'.join(map(str, path))}")
        values[field_name] = value
    return Action(**values)
