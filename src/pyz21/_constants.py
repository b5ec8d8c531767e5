"""Internal constants shared across the library.

Header and X-header values follow the vendor's Z21 LAN protocol document
(``z21-lan-protokoll-en.pdf``).
"""

DEFAULT_PORT = 21105

# ------------------------------------------------------------------
# LAN headers (u16, little-endian on the wire)
# ------------------------------------------------------------------

HEADER_GET_SERIAL_NUMBER = 0x0010
HEADER_GET_CODE = 0x0018
HEADER_GET_HWINFO = 0x001A
HEADER_LOGOFF = 0x0030
HEADER_XBUS = 0x0040
HEADER_SET_BROADCAST_FLAGS = 0x0050
HEADER_GET_BROADCAST_FLAGS = 0x0051
HEADER_GET_LOCO_MODE = 0x0060
HEADER_SET_LOCO_MODE = 0x0061
HEADER_GET_TURNOUT_MODE = 0x0070
HEADER_SET_TURNOUT_MODE = 0x0071
HEADER_RMBUS_DATA_CHANGED = 0x0080
HEADER_RMBUS_GET_DATA = 0x0081
HEADER_SYSTEM_STATE_CHANGED = 0x0084
HEADER_SYSTEM_STATE_GET_DATA = 0x0085
HEADER_RAILCOM_DATA_CHANGED = 0x0088
HEADER_RAILCOM_GET_DATA = 0x0089
# Undocumented vendor extension used by the Z21 app.
HEADER_GET_LOCO_SLOT_INFO = 0x00AF

# ------------------------------------------------------------------
# X-Bus headers (first payload byte after HEADER_XBUS)
# ------------------------------------------------------------------

XHEADER_GET_LOCO_INFO = 0xE3
XHEADER_SET_LOCO = 0xE4
XHEADER_LOCO_INFO = 0xEF
XHEADER_SET_TURNOUT = 0x53
XHEADER_TURNOUT_INFO = 0x43
XHEADER_TRACK_POWER = 0x61
XHEADER_STOPPED = 0x81
XHEADER_FIRMWARE_VERSION = 0xF3

# DB0 values that share an X-header with other messages.
XDB0_GET_LOCO_INFO = 0xF0
XDB0_SET_LOCO_FUNCTION = 0xF8
XDB0_UNKNOWN_COMMAND = 0x82

# ------------------------------------------------------------------
# Firmware versions that change parsing or broadcast behaviour
# ------------------------------------------------------------------

FIRMWARE_ALL_LOCO_INFO: tuple[int, int] = (1, 20)
FIRMWARE_EXTENDED_INFO: tuple[int, int] = (1, 42)
FIRMWARE_LOCO_INFO_MM_BIT: tuple[int, int] = (1, 43)

# Loco addresses at or above this value need the two MSB flag bits set.
EXTENDED_ADDRESS_MIN = 128
EXTENDED_ADDRESS_FLAGS = 0xC0
MAX_LOCO_ADDRESS = 10239
MAX_FUNCTION_INDEX = 63
