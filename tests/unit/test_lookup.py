"""Unit tests for the inventory backend client."""

from __future__ import annotations

import unittest

import requests

from lookup import InventoryClient, ItemNotFound, LookupFailed

BASE = "http://inventory.test/api"


class _Response:
    def __init__(self, status_code: int, payload=None) -> None:
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return str(self._payload)

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class _Session:
    def __init__(self, response: _Response | None = None, exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.calls: list[tuple] = []

    def _reply(self) -> _Response:
        if self.exc is not None:
            raise self.exc
        return self.response

    def get(self, url: str, timeout: float) -> _Response:
        self.calls.append(("GET", url, None))
        return self._reply()

    def post(self, url: str, json: dict, timeout: float) -> _Response:
        self.calls.append(("POST", url, json))
        return self._reply()

    def close(self) -> None:
        return None


class InventoryClientTests(unittest.TestCase):
    def test_scan_returns_item(self) -> None:
        session = _Session(_Response(200, {"barcode": "012345678905", "name": "Gloves"}))
        client = InventoryClient(BASE + "/", session=session)

        item = client.scan(" 012345678905 ")

        self.assertEqual(item["name"], "Gloves")
        self.assertEqual(session.calls[0][1], f"{BASE}/public/barcode/scan/012345678905")

    def test_code_is_url_encoded(self) -> None:
        session = _Session(_Response(200, {}))
        InventoryClient(BASE, session=session).scan("AB 12/3")
        self.assertTrue(session.calls[0][1].endswith("/scan/AB%2012%2F3"))

    def test_scan_not_found(self) -> None:
        client = InventoryClient(BASE, session=_Session(_Response(404, {"error": "nope"})))

        with self.assertRaises(ItemNotFound) as ctx:
            client.scan("999")
        self.assertEqual(str(ctx.exception), "Item not found with this barcode")

    def test_scan_server_error_is_generic(self) -> None:
        client = InventoryClient(BASE, session=_Session(_Response(500, {"error": "db down"})))

        with self.assertRaises(LookupFailed) as ctx:
            client.scan("999")
        self.assertNotIsInstance(ctx.exception, ItemNotFound)
        self.assertEqual(str(ctx.exception), "Error scanning barcode. Please try again.")

    def test_network_error_maps_to_lookup_failed(self) -> None:
        client = InventoryClient(BASE, session=_Session(exc=requests.ConnectionError("refused")))
        with self.assertRaises(LookupFailed):
            client.scan("123")

    def test_use_posts_quantity(self) -> None:
        session = _Session(_Response(200, {"message": "ok", "remainingInventory": 4}))

        resp = InventoryClient(BASE, session=session).use("123", 2)

        self.assertEqual(resp["remainingInventory"], 4)
        self.assertEqual(session.calls[0], ("POST", f"{BASE}/public/barcode/use/123", {"quantity": 2}))

    def test_use_error_message_from_backend(self) -> None:
        session = _Session(_Response(400, {"error": "Insufficient inventory"}))

        with self.assertRaises(LookupFailed) as ctx:
            InventoryClient(BASE, session=session).use("123", 50)
        self.assertEqual(str(ctx.exception), "Insufficient inventory")

    def test_add_pending_po_fallback_message(self) -> None:
        session = _Session(_Response(500))

        with self.assertRaises(LookupFailed) as ctx:
            InventoryClient(BASE, session=session).add_pending_po("123", 5)
        self.assertEqual(str(ctx.exception), "Error adding to Pending PO. Please try again.")
        self.assertEqual(session.calls[0][1], f"{BASE}/public/barcode/add-pending-po/123")

    def test_use_ok_reply_without_json_body(self) -> None:
        session = _Session(_Response(200))

        with self.assertRaises(LookupFailed) as ctx:
            InventoryClient(BASE, session=session).use("123", 1)
        self.assertEqual(str(ctx.exception), "Error recording item usage. Please try again.")

    def test_scan_ok_reply_without_json_body(self) -> None:
        client = InventoryClient(BASE, session=_Session(_Response(200)))

        with self.assertRaises(LookupFailed) as ctx:
            client.scan("123")
        self.assertEqual(str(ctx.exception), "Error scanning barcode. Please try again.")

    def test_ok_reply_with_non_object_body(self) -> None:
        session = _Session(_Response(200, ["unexpected"]))

        with self.assertRaises(LookupFailed) as ctx:
            InventoryClient(BASE, session=session).add_pending_po("123", 2)
        self.assertEqual(str(ctx.exception), "Error adding to Pending PO. Please try again.")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
