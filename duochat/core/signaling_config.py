"""시그널링 관련 설정"""

import re

# ICE 서버 설정 (STUN만 사용)
# TURN 서버 없이 동작하므로 제한적인 NAT(Symmetric NAT) 환경에서는 연결 실패 가능
ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
    {"urls": "stun:stun1.l.google.com:19302"},
    {"urls": "stun:stun2.l.google.com:19302"},
    {"urls": "stun:stun3.l.google.com:19302"},
    {"urls": "stun:stun4.l.google.com:19302"},
    {"urls": "stun:stun.services.mozilla.com:3478"},
    {"urls": "stun:stun.stunprotocol.org:3478"},
    {"urls": "stun:global.stun.twilio.com:3478?transport=udp"},
]

# 모바일 기기에는 STUN 서버를 더 제공
MOBILE_EXTRA_ICE_SERVERS = [
    {"urls": "stun:stun.voip.blackberry.com:3478"},
    {"urls": "stun:stun.voipgate.com:3478"},
]

# 클라이언트 ping 주기 (ms)
DESKTOP_PING_INTERVAL_MS = 20000
MOBILE_PING_INTERVAL_MS = 15000

# 피어 연결 타임아웃 (ms)
PEER_CONNECTION_TIMEOUT_MS = 30000

# 접속 직후 내려주는 connection-optimized 설정 (ms)
ICE_CONNECTION_TIMEOUT_MS = 30000
ICE_GATHERING_TIMEOUT_MS = 10000
PEER_CONNECTION_SETUP_TIMEOUT_MS = 45000

# 권장 미디어 제약 (getUserMedia)
MEDIA_CONSTRAINTS = {
    "audio": True,
    "video": {
        "width": {"ideal": 1280},
        "height": {"ideal": 720},
        "frameRate": {"ideal": 24},
    },
}

# 연결 품질 임계값 (왕복 지연, ms)
POOR_LATENCY_MS = 1000
FAIR_LATENCY_MS = 500

# 방 ID 형식
ROOM_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
ROOM_ID_LENGTH = 8
ROOM_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{6,8}$")

# 모바일 User-Agent 판별
MOBILE_USER_AGENT_PATTERN = re.compile(r"iPhone|iPad|iPod|Android", re.IGNORECASE)

# 디버깅용으로 노출하는 User-Agent 최대 길이
USER_AGENT_PREVIEW_LENGTH = 100

# 사용자 ID 최대 길이 (클라이언트 생성 값)
USER_ID_MAX_LENGTH = 128


def get_ice_servers(is_mobile: bool = False) -> list[dict[str, str]]:
    """클라이언트에 내려줄 ICE 서버 목록"""
    servers = [dict(server) for server in ICE_SERVERS]
    if is_mobile:
        servers.extend(dict(server) for server in MOBILE_EXTRA_ICE_SERVERS)
    return servers
