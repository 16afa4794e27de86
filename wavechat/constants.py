# wavechat wire constants (event names and frame keys)

# Frame keys
K_EVENT = "event"
K_DATA = "data"

# Client -> server events
T_SET_FINGERPRINT = "setFingerprint"
T_SET_NICKNAME = "setNickname"
T_REJOIN = "rejoin"
T_GENERATE_DEVICE_CODE = "generateDeviceCode"
T_MESSAGE = "message"
T_BAN_USER = "banUser"

CLIENT_EVENTS = frozenset(
    {
        T_SET_FINGERPRINT,
        T_SET_NICKNAME,
        T_REJOIN,
        T_GENERATE_DEVICE_CODE,
        T_MESSAGE,
        T_BAN_USER,
    }
)

# Server -> client events
T_ONLINE_COUNT = "onlineCount"
T_SESSION_VALID = "sessionValid"
T_INVALID_SESSION = "invalidSession"
T_BANNED = "banned"
T_NICKNAME_ACCEPTED = "nicknameAccepted"
T_MESSAGE_HISTORY = "messageHistory"
T_USER_JOINED = "userJoined"
T_USER_LEFT = "userLeft"
T_MESSAGE_DELETED = "messageDeleted"
T_DEVICE_CODE_GENERATED = "deviceCodeGenerated"
T_DEVICE_CODE_DELETED = "deviceCodeDeleted"
T_ERROR = "error"

# Hub-local pseudo event: the transport closes the connection instead of
# sending a frame.
T_CLOSE = "close"

# Device codes
DEVICE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"

# Persisted snapshot keys
S_USERS = "registeredUsers"
S_TOKENS = "sessionTokens"
S_MESSAGES = "messages"
S_BANNED_USERS = "bannedUsers"
S_BANNED_NICKNAMES = "bannedNicknames"
S_BANNED_IPS = "bannedIPs"
S_BANNED_FINGERPRINTS = "bannedFingerprints"
S_FINGERPRINTS = "userFingerprints"
S_ADMIN_ID = "adminId"
S_TIMESTAMP = "timestamp"

# Ban kinds accepted by point unban
BAN_KIND_USER = "user"
BAN_KIND_NICKNAME = "nickname"
BAN_KIND_IP = "ip"
BAN_KIND_FINGERPRINT = "fingerprint"
BAN_KINDS = (BAN_KIND_USER, BAN_KIND_NICKNAME, BAN_KIND_IP, BAN_KIND_FINGERPRINT)
