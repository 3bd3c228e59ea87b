"""Inventory backend calls for a scanned barcode: look up, use, add to pending PO."""

import logging
from urllib.parse import quote

import requests

logger = logging.getLogger("scanner")


class LookupFailed(Exception):
    """Backend call failed; str(exc) is the message to show the operator."""


class ItemNotFound(LookupFailed):
    def __init__(self, code: str):
        super().__init__("Item not found with this barcode")
        self.code = code


def _error_message(resp: requests.Response, fallback: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return fallback
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return fallback


def _json_body(resp: requests.Response, fallback: str) -> dict:
    try:
        body = resp.json()
    except ValueError as e:
        logger.error("Response body is not JSON: %s", resp.text[:200])
        raise LookupFailed(fallback) from e
    if not isinstance(body, dict):
        logger.error("Unexpected response body: %s", resp.text[:200])
        raise LookupFailed(fallback)
    return body


class InventoryClient:
    """Thin requests wrapper around the public barcode endpoints."""

    def __init__(self, base_url: str, timeout: float = 10, session: requests.Session | None = None):
        self._base = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _url(self, action: str, code: str) -> str:
        return f"{self._base}/public/barcode/{action}/{quote(code.strip(), safe='')}"

    def scan(self, code: str) -> dict:
        url = self._url("scan", code)
        try:
            resp = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            logger.error("Barcode lookup error: %s", e)
            raise LookupFailed("Error scanning barcode. Please try again.") from e
        if resp.status_code == 404:
            raise ItemNotFound(code)
        if not resp.ok:
            logger.error("Barcode lookup failed: %d %s", resp.status_code, resp.text[:200])
            raise LookupFailed("Error scanning barcode. Please try again.")
        return _json_body(resp, "Error scanning barcode. Please try again.")

    def _post(self, action: str, code: str, quantity: int, fallback: str) -> dict:
        url = self._url(action, code)
        try:
            resp = self._session.post(url, json={"quantity": quantity}, timeout=self._timeout)
        except requests.RequestException as e:
            logger.error("%s error: %s", action, e)
            raise LookupFailed(fallback) from e
        if not resp.ok:
            logger.error("%s failed: %d %s", action, resp.status_code, resp.text[:200])
            raise LookupFailed(_error_message(resp, fallback))
        return _json_body(resp, fallback)

    def use(self, code: str, quantity: int) -> dict:
        return self._post("use", code, quantity, "Error recording item usage. Please try again.")

    def add_pending_po(self, code: str, quantity: int) -> dict:
        return self._post(
            "add-pending-po", code, quantity, "Error adding to Pending PO. Please try again."
        )

    def close(self):
        self._session.close()
