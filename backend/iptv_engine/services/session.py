import enum
import json
import logging
import threading
import uuid
from typing import Callable, Dict, Optional

from iptv_engine.services.stalker import StalkerClient, js_payload, js_timestamp

logger = logging.getLogger(__name__)

STB_VERSION = (
    "ImageDescription: 0.2.18-r23-250; ImageDate: Wed Aug 29 10:49:53 EEST 2018; "
    "PORTAL version: 5.6.9; API Version: JS API version: 343; STB API version: 146; "
    "Player Engine version: 0x58c"
)


class SessionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"
    FAILED = "failed"


def generate_serial_number() -> str:
    return (uuid.uuid4().hex + uuid.uuid4().hex).upper()


def generate_random() -> str:
    return (uuid.uuid4().hex + uuid.uuid4().hex)[:39]


def handshake_params() -> Dict[str, str]:
    return {
        "type": "stb",
        "action": "handshake",
        "token": "",
        "JsHttpRequest": js_timestamp(),
    }


def profile_params(account) -> Dict[str, str]:
    metrics = {
        "mac": account.mac_address or "",
        "sn": account.serial_number or "",
        "type": "STB",
        "model": "MAG250",
        "uid": "",
        "random": generate_random(),
    }
    return {
        "type": "stb",
        "action": "get_profile",
        "hd": "1",
        "ver": STB_VERSION,
        "num_banks": "2",
        "sn": account.serial_number or "",
        "stb_type": "MAG250",
        "client_type": "STB",
        "image_version": "218",
        "video_out": "hdmi",
        "device_id": account.device_id_1 or "",
        "device_id2": account.device_id_2 if account.device_id_2 is not None else (account.device_id_1 or ""),
        "signature": account.signature or generate_serial_number(),
        "auth_second_step": "1",
        "hw_version": "1.7-BD-00",
        "not_valid_token": "0",
        "metrics": json.dumps(metrics, separators=(",", ":")),
        "hw_version_2": generate_random(),
        "api_signature": "262",
        "prehash": "",
        "JsHttpRequest": js_timestamp(),
    }


def account_info_params() -> Dict[str, str]:
    return {
        "type": "account_info",
        "action": "get_main_info",
        "JsHttpRequest": js_timestamp(),
    }


def parse_token(body: str) -> str:
    js = js_payload(body)
    if not isinstance(js, dict):
        return ""
    token = js.get("token")
    return str(token).strip() if token else ""


class SessionManager:
    """
    Owns the Stalker handshake/token protocol. Tokens only live in process
    memory, keyed by account id.
    """

    def __init__(self, client: StalkerClient, ensure_portal_url: Callable[[object], Optional[str]]):
        self.client = client
        self.ensure_portal_url = ensure_portal_url
        self._tokens: Dict[int, str] = {}
        self._states: Dict[int, SessionState] = {}
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, account_id: int) -> threading.Lock:
        with self._locks_guard:
            if account_id not in self._locks:
                self._locks[account_id] = threading.Lock()
            return self._locks[account_id]

    def token(self, account) -> Optional[str]:
        return self._tokens.get(account.id)

    def is_connected(self, account) -> bool:
        return bool(self._tokens.get(account.id))

    def state(self, account) -> SessionState:
        return self._states.get(account.id, SessionState.DISCONNECTED)

    def invalidate(self, account_id: int) -> None:
        """Forget the token; the next call must handshake again."""
        self._tokens.pop(account_id, None)
        self._states[account_id] = SessionState.DISCONNECTED

    def connect(self, account) -> bool:
        with self._lock_for(account.id):
            return self._establish(account, hard=False)

    def hard_token_refresh(self, account) -> bool:
        with self._lock_for(account.id):
            return self._establish(account, hard=True)

    def ensure_connected(self, account) -> bool:
        """Handshake only when no token is held; concurrent callers share one handshake."""
        if self.is_connected(account):
            return True
        with self._lock_for(account.id):
            if self.is_connected(account):
                return True
            return self._establish(account, hard=False)

    def fetch(self, account, params: Dict[str, str]) -> str:
        """Authenticated portal call with the account's current token."""
        return self.client.fetch(account, params, token=self.token(account))

    def _establish(self, account, hard: bool) -> bool:
        self.invalidate(account.id)
        if not self.ensure_portal_url(account):
            logger.warning(f"Unable to resolve server portal URL for account: {account.name}")
            return False

        self._states[account.id] = SessionState.HANDSHAKING
        body = self.client.fetch(account, handshake_params())
        token = parse_token(body)
        if token:
            self._tokens[account.id] = token
            self._states[account.id] = SessionState.CONNECTED
            logger.info(f"Handshake succeeded for account: {account.name}")
        else:
            self._states[account.id] = SessionState.FAILED
            logger.warning(f"Unable to retrieve a token for {account.name}: {body[:200]!r}")
            if not hard:
                return False

        profile = self.client.fetch(account, profile_params(account), token=token or None)
        if not hard and profile.strip():
            self.client.fetch(account, account_info_params(), token=token)
        return bool(token)
