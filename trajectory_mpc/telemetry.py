"""
Telemetry / command records and the simulator's socket.io text framing.

The simulator sends events as text frames of the form
    42["telemetry", {"ptsx": [...], "ptsy": [...], "x": ..., ...}]
where "4" marks a websocket message and "2" an event. Frames with a
null payload mean there is no data (manual driving) and are answered
with MANUAL_REPLY. Commands go back as
    42["steer", {"steering_angle": ..., "throttle": ..., ...}]

Transport (sockets, port binding) is not handled here.
"""

import json
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .mpc_core.errors import InputError
from .mpc_core.frames import Pose

MANUAL_REPLY = '42["manual",{}]'
TELEMETRY_EVENT = 'telemetry'


@dataclass(frozen=True)
class Telemetry:
    """
    One inbound telemetry record.

    Attributes:
        ptsx, ptsy: Global-frame waypoints
        x, y: Global-frame vehicle position
        psi: Global-frame heading (rad)
        speed: Current speed
    """
    ptsx: Tuple[float, ...] = ()
    ptsy: Tuple[float, ...] = ()
    x: float = 0.0
    y: float = 0.0
    psi: float = 0.0
    speed: float = 0.0

    @property
    def pose(self) -> Pose:
        return Pose(self.x, self.y, self.psi, self.speed)

    @classmethod
    def from_dict(cls, data) -> 'Telemetry':
        """
        Build from a decoded JSON object.

        Raises:
            InputError: missing keys, non-numeric values, or x/y waypoint
                lists of different length
        """
        if not isinstance(data, dict):
            raise InputError(f"Telemetry must be an object, got {type(data).__name__}")
        missing = [k for k in ('ptsx', 'ptsy', 'x', 'y', 'psi', 'speed') if k not in data]
        if missing:
            raise InputError(f"Telemetry missing fields: {missing}")

        ptsx = _float_list(data['ptsx'], 'ptsx')
        ptsy = _float_list(data['ptsy'], 'ptsy')
        if len(ptsx) != len(ptsy):
            raise InputError(f"ptsx/ptsy length mismatch ({len(ptsx)} vs {len(ptsy)})")

        return cls(
            ptsx=tuple(ptsx),
            ptsy=tuple(ptsy),
            x=_float(data['x'], 'x'),
            y=_float(data['y'], 'y'),
            psi=_float(data['psi'], 'psi'),
            speed=_float(data['speed'], 'speed'),
        )


@dataclass
class SteerCommand:
    """
    One outbound command record.

    Attributes:
        steering_angle: Normalized steering in [-1, 1], platform convention
        throttle: Normalized acceleration/brake in [-1, 1]
        trajectory_x, trajectory_y: Predicted path, vehicle frame
        reference_x, reference_y: Waypoints in the vehicle frame
        status: 'ok', 'neutral' (bad input) or 'fallback' (solver failure)
    """
    steering_angle: float = 0.0
    throttle: float = 0.0
    trajectory_x: List[float] = field(default_factory=list)
    trajectory_y: List[float] = field(default_factory=list)
    reference_x: List[float] = field(default_factory=list)
    reference_y: List[float] = field(default_factory=list)
    status: str = 'neutral'

    def to_wire(self) -> dict:
        """Simulator field names: mpc_* is the green line, next_* the yellow line."""
        return {
            'steering_angle': self.steering_angle,
            'throttle': self.throttle,
            'mpc_x': list(self.trajectory_x),
            'mpc_y': list(self.trajectory_y),
            'next_x': list(self.reference_x),
            'next_y': list(self.reference_y),
        }


def _float(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(f"Telemetry field {name!r} is not a number: {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InputError(f"Telemetry field {name!r} is not finite")
    return value


def _float_list(values, name: str) -> List[float]:
    if not isinstance(values, (list, tuple)):
        raise InputError(f"Telemetry field {name!r} is not a list")
    return [_float(v, name) for v in values]


def extract_payload(raw: str) -> Optional[str]:
    """
    Return the JSON array inside a socket.io event frame, or None.

    None means there is no usable data: the frame contains "null" or has
    no [ ... }] section.
    """
    if 'null' in raw:
        return None
    start = raw.find('[')
    end = raw.rfind('}]')
    if start == -1 or end == -1:
        return None
    return raw[start:end + 2]


def decode_frame(raw: str) -> Optional[Tuple[str, dict]]:
    """
    Decode a socket.io event frame into (event, data).

    Returns:
        (event_name, data) or None if the frame is not an event with data

    Raises:
        InputError: if the payload is not valid JSON
    """
    if len(raw) <= 2 or not raw.startswith('42'):
        return None
    payload = extract_payload(raw)
    if payload is None:
        return None
    try:
        message = json.loads(payload)
    except json.JSONDecodeError as e:
        raise InputError(f"Malformed frame payload: {e}") from e
    if not isinstance(message, list) or len(message) < 2 or not isinstance(message[0], str):
        raise InputError("Frame payload is not an [event, data] pair")
    return message[0], message[1]


def encode_steer(command: SteerCommand) -> str:
    """Encode a command as a socket.io "steer" event frame."""
    return '42["steer",' + json.dumps(command.to_wire()) + ']'
