from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


# Admin request bodies. Fields are optional so that a missing key is
# reported as 403 and a missing value as 400, not as a schema error.
class AdminKeyBody(BaseModel):
    adminKey: Optional[str] = None


class UnbanIpBody(AdminKeyBody):
    ip: Optional[str] = None


class UnbanBody(AdminKeyBody):
    kind: Optional[str] = Field(None, description="user|nickname|ip|fingerprint")
    value: Optional[str] = None


class BannedIps(BaseModel):
    count: int
    ips: List[str]


class Health(BaseModel):
    status: str
    uptime_s: float
    onlineCount: int
    onlineUsers: int
    registeredUsers: int
    totalMessages: int
    adminExists: bool
    bannedUsers: int
    bannedNicknames: int
    bannedIPs: int
    bannedFingerprints: int
    persistence: str


class AdminResult(BaseModel):
    success: bool = True
    message: str
    stats: Optional[Dict[str, int]] = None


class ActiveSession(BaseModel):
    connId: str
    ip: str
    connectedAt: int


class DebugUser(BaseModel):
    nickname: str
    activeSessions: List[ActiveSession]
    sessionCount: int
    registeredUser: Optional[Dict[str, Any]] = None
    registeredUserId: Optional[str] = None
    isBanned: bool
    totalActiveConnections: int
    totalRegisteredUsers: int
