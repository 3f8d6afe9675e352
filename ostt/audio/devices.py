"""Input device discovery and resolution."""

import logging
from dataclasses import dataclass
from typing import List, Optional

import pyaudio

from ..exceptions import DeviceUnavailable

logger = logging.getLogger(__name__)


@dataclass
class InputDevice:
    """An audio input device as reported by PortAudio."""
    index: int  # PortAudio device index
    position: int  # Position in the input-only list shown by `ostt list-devices`
    name: str
    max_input_channels: int
    default_sample_rate: int
    is_default: bool = False


def list_input_devices(pa: "pyaudio.PyAudio") -> List[InputDevice]:
    """Enumerate devices that can record, skipping any that fail to query."""
    try:
        default_index = pa.get_default_input_device_info().get("index")
    except (IOError, OSError):
        default_index = None

    devices: List[InputDevice] = []
    for index in range(pa.get_device_count()):
        try:
            info = pa.get_device_info_by_index(index)
        except (IOError, OSError) as e:
            logger.debug(f"Skipping device {index}: {e}")
            continue
        if int(info.get("maxInputChannels", 0)) <= 0:
            continue
        devices.append(InputDevice(
            index=int(info.get("index", index)),
            position=len(devices),
            name=str(info.get("name", "Unknown")),
            max_input_channels=int(info.get("maxInputChannels", 0)),
            default_sample_rate=int(info.get("defaultSampleRate", 0)),
            is_default=(info.get("index", index) == default_index),
        ))
    return devices


def resolve_input_device(pa: "pyaudio.PyAudio", device_spec: str) -> InputDevice:
    """Find the device for a config value: "default", a list position, or a name.

    Raises:
        DeviceUnavailable: If no matching input device exists
    """
    devices = list_input_devices(pa)

    if device_spec == "default":
        try:
            info = pa.get_default_input_device_info()
        except (IOError, OSError) as e:
            raise DeviceUnavailable(f"No audio input device available: {e}") from e
        for device in devices:
            if device.index == info.get("index"):
                return device
        return InputDevice(
            index=int(info.get("index", 0)),
            position=0,
            name=str(info.get("name", "default")),
            max_input_channels=int(info.get("maxInputChannels", 0)),
            default_sample_rate=int(info.get("defaultSampleRate", 0)),
            is_default=True,
        )

    if device_spec.isdigit():
        position = int(device_spec)
        if position < len(devices):
            return devices[position]
        raise DeviceUnavailable(
            f"Device index {position} is out of range (0-{max(0, len(devices) - 1)})"
        )

    for device in devices:
        if device.name == device_spec:
            return device

    raise DeviceUnavailable(
        f"Audio input device '{device_spec}' not found. "
        f"Use 'ostt list-devices' to see available devices."
    )


def find_default_device(devices: List[InputDevice]) -> Optional[InputDevice]:
    for device in devices:
        if device.is_default:
            return device
    return None
