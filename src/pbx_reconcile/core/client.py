import re
import threading
from typing import Any, Protocol

import requests

from ..config import Config
from ..errors import EngineUnreachableError, NotFoundError, ReloadError

# Extract "ip:port" from a contact URI such as sip:101@10.0.0.5:5060;ob
_CONTACT_ADDR = re.compile(r"sip:[^@]*@\[?([0-9A-Fa-f.:]+?)\]?:(\d+)")


class EngineControl(Protocol):
    """Narrow contract the core consumes from the telephony engine."""

    def validate_connection(self) -> str: ...

    def list_live_endpoints(self) -> list[dict[str, Any]]: ...

    def get_endpoint_detail(self, endpoint_id: str) -> dict[str, Any]: ...

    def reload(self) -> str: ...


class AriClient:
    """Engine control client over the Asterisk REST Interface (ARI).

    Endpoint configuration is read through ARI's dynamic sorcery config
    API and reloads are issued by reloading the ``res_pjsip.so`` module.
    Every request carries ``config.engine_timeout``; connection failures
    and timeouts surface as ``EngineUnreachableError``.
    """

    TECHNOLOGY = "PJSIP"
    RELOAD_MODULE = "res_pjsip.so"

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = f"{self.config.ari_url.rstrip('/')}/ari"

    @property
    def session(self) -> requests.Session:
        """Current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.auth = (self.config.ari_username, self.config.ari_password)
        session.verify = not self.config.insecure
        return session

    def _request(self, method: str, path: str) -> requests.Response:
        """
        Send a request to ARI, translating transport failures.
        """
        url = f"{self.base_url}{path}"
        timeout = self.config.engine_timeout
        try:
            return self._get_session().request(
                method, url, timeout=(min(timeout, 5.0), timeout)
            )
        except requests.Timeout as e:
            raise EngineUnreachableError(
                f"Engine did not answer {method} {path} within {timeout}s"
            ) from e
        except requests.ConnectionError as e:
            raise EngineUnreachableError(
                f"Cannot connect to engine at {self.base_url}: {e}"
            ) from e

    def _get_json(self, path: str) -> Any:
        response = self._request("GET", path)
        if response.status_code == 404:
            raise NotFoundError(f"Engine object not found: {path}")
        if not response.ok:
            raise EngineUnreachableError(
                f"Engine rejected GET {path}: "
                f"HTTP {response.status_code} {response.text.strip()}"
            )
        return response.json()

    def _get_config_object(
        self, object_type: str, object_id: str
    ) -> dict[str, str]:
        """
        Fetch one res_pjsip sorcery object as an attribute -> value dict.
        """
        tuples = self._get_json(
            f"/asterisk/config/dynamic/res_pjsip/{object_type}/{object_id}"
        )
        return {
            item["attribute"]: item.get("value", "")
            for item in tuples or []
        }

    def validate_connection(self) -> str:
        """
        Call /asterisk/info and return the engine version string.
        """
        info = self._get_json("/asterisk/info")
        system = info.get("system", {}) if isinstance(info, dict) else {}
        return str(system.get("version", ""))

    def list_live_endpoints(self) -> list[dict[str, Any]]:
        """
        List PJSIP endpoints currently loaded in the engine.

        Returns:
            List of dicts with ``id``, ``state`` and ``channel_ids``.
        """
        raw = self._get_json(f"/endpoints/{self.TECHNOLOGY}")
        return [
            {
                "id": item["resource"],
                "state": item.get("state", "unknown"),
                "channel_ids": list(item.get("channel_ids", [])),
            }
            for item in raw or []
        ]

    def get_endpoint_detail(self, endpoint_id: str) -> dict[str, Any]:
        """
        Collect the configured attributes of one endpoint.

        Merges the endpoint object with its auth (for secret presence) and
        AOR (for contacts). Secret values never leave this method.

        Raises:
            NotFoundError: If the endpoint is not loaded in the engine.
            EngineUnreachableError: If ARI cannot be reached.
        """
        endpoint = self._get_config_object("endpoint", endpoint_id)

        has_secret: bool | None = None
        auth_id = _first_ref(endpoint.get("auth", ""))
        if auth_id:
            try:
                auth = self._get_config_object("auth", auth_id)
                has_secret = bool(auth.get("password", "").strip())
            except NotFoundError:
                has_secret = False
        elif "auth" in endpoint:
            has_secret = False

        contacts: list[str] = []
        aor_id = _first_ref(endpoint.get("aors", ""))
        if aor_id:
            try:
                aor = self._get_config_object("aor", aor_id)
                contacts = _split_list(aor.get("contact", ""))
            except NotFoundError:
                contacts = []

        ip_address, port = _contact_address(contacts)

        return {
            "id": endpoint_id,
            "context": endpoint.get("context") or None,
            "transport": endpoint.get("transport") or None,
            "codecs": _split_list(endpoint.get("allow", "")),
            "callerid": endpoint.get("callerid") or None,
            "has_secret": has_secret,
            "contacts": contacts,
            "ip_address": ip_address,
            "port": port,
        }

    def reload(self) -> str:
        """
        Reload the PJSIP module so the engine re-reads its config files.

        Returns:
            Engine response text (empty on 204).

        Raises:
            ReloadError: If the engine reports failure.
            EngineUnreachableError: If ARI cannot be reached.
        """
        response = self._request(
            "PUT", f"/asterisk/modules/{self.RELOAD_MODULE}"
        )
        if not response.ok:
            raise ReloadError(
                f"Engine failed to reload {self.RELOAD_MODULE} "
                f"(HTTP {response.status_code})",
                raw_error=response.text.strip(),
            )
        return response.text.strip()


def _split_list(value: str) -> list[str]:
    """Split an ARI list value like ``(ulaw|alaw)`` or ``a,b`` into items."""
    value = value.strip().strip("()")
    if not value:
        return []
    return [v.strip() for v in re.split(r"[|,]", value) if v.strip()]


def _first_ref(value: str) -> str:
    items = _split_list(value)
    return items[0] if items else ""


def _contact_address(contacts: list[str]) -> tuple[str | None, int | None]:
    for contact in contacts:
        match = _CONTACT_ADDR.search(contact)
        if match:
            return match.group(1), int(match.group(2))
    return None, None
