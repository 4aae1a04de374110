import requests
from finbot.config import API_URL, API_TIMEOUT
from finbot.logger import get_logger

logger = get_logger(__name__)

PIX_KEY_TYPES = ("CPF", "EMAIL", "PHONE", "RANDOM")


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ApiClient:
    """Thin client of the finance backend. One instance per logged-in user."""

    def __init__(self, base_url: str = API_URL, token: str | None = None, timeout: float = API_TIMEOUT, session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        self.debts = DebtsApi(self)
        self.wallets = WalletsApi(self)
        self.pix_keys = PixKeysApi(self)
        self.gateway = GatewayApi(self)

    def request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ApiError(f"Could not reach the server: {e}")

        if response.status_code >= 400:
            message = f"Request failed with status {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
                    if isinstance(message, list):
                        message = "; ".join(str(m) for m in message)
            except ValueError:
                pass
            logger.warning(f"{method} {url} returned {response.status_code}: {message}")
            raise ApiError(message, response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise ApiError(f"Invalid JSON from {path}", response.status_code)


class DebtsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def check_duplicates(self, criteria: dict) -> list[dict]:
        return self.client.request("POST", "/debts/check-duplicates", json=criteria) or []

    def create(self, payload: dict) -> dict:
        return self.client.request("POST", "/debts", json=payload)


class WalletsApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(self) -> list[dict]:
        return self.client.request("GET", "/wallets") or []


class PixKeysApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def list(self, wallet_id: str | None = None) -> list[dict]:
        keys = self.client.request("GET", "/pix-keys") or []
        if wallet_id:
            keys = [key for key in keys if key.get("walletId") == wallet_id]
        return keys

    def create(self, key_data: dict) -> dict:
        return self.client.request("POST", "/pix-keys", json=key_data)


class GatewayApi:
    def __init__(self, client: ApiClient):
        self.client = client

    def get_connection_status(self) -> dict:
        return self.client.request("GET", "/payments/mercadopago/status") or {"connected": False}

    def get_authorization_url(self) -> dict:
        return self.client.request("GET", "/payments/mercadopago/auth-url")
