"""
Protocol constants for the robot position-interface link.

Marker strings, default ports and buffer limits are fixed by the controller
protocols. Timing values are defaults; console/config.py may override them.
"""

# Control channel (CRI) framing
CRI_START_MARKER = "CRISTART"
CRI_END_MARKER = "CRIEND"
CRI_DEFAULT_PORT = 3920

# Sequence numbers for outbound CRI frames: first frame is 2, wraps 9999 -> 1
CRI_SEQ_INITIAL = 1
CRI_SEQ_LIMIT = 10000

# Streaming channel (position interface) framing
MSG_START_MARKER = "MSGSTART"
MSG_END_MARKER = "MSGEND"
DEFAULT_POSITION_INTERFACE_PORT = 3921

# Buffer limits - bound memory growth from an unframed peer
MAX_MESSAGE_BUFFER = 1024       # characters kept in a receive text buffer
RECV_CHUNK_SIZE = 4096

# Timing constants
KEEPALIVE_INTERVAL_S = 0.5
STATE_REQUEST_INTERVAL_S = 0.5
SOCKET_CONNECT_TIMEOUT_S = 2.0
SOCKET_READ_TIMEOUT_S = 0.2     # read loops re-check their stop flag at this rate
THREAD_JOIN_TIMEOUT_S = 2.0

# Handshake defaults
DEFAULT_SEND_INTERVAL_MS = 100
CONNECT_TIMEOUT_S = 5.0
INTERFACE_START_TIMEOUT_S = 10.0
INTERFACE_ACTIVATE_TIMEOUT_S = 10.0
STREAM_SETTLE_S = 1.0
HANDSHAKE_POLL_S = 0.1

# Instrumentation
ROLLING_WINDOW_SIZE = 20

# Pose layout
NUM_JOINTS = 9          # 6 robot joints + 3 external joints
NUM_ROBOT_JOINTS = 6

# CRI commands
CMD_QUIT = "QUIT"
CMD_GET_ACTIVE = "CMD GetActive"
CMD_SET_ACTIVE = "CMD SetActive true"
CMD_RESET = "CMD Reset"
CMD_ENABLE = "CMD Enable"
CMD_DISABLE = "CMD Disable"
CMD_GET_POSITION_INTERFACE = "CMD GetPositionInterface"
CMD_CONFIGURE_POSITION_INTERFACE = "CONFIG SetPositionInterface"
CMD_USE_POSITION_INTERFACE = "CMD UsePositionInterface"
CMD_KEEPALIVE = "ALIVEJOG 0 0 0 0 0 0 0 0 0"

# Error code shown while no controller status is known
ERROR_CODE_NOT_CONNECTED = "Not Connected"
