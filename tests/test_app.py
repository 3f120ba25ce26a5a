import time
import unittest

from fastapi.testclient import TestClient

from sequencer.app import create_app
from sequencer.core import Sequencer
from sequencer.errors import TransientChainError
from sequencer.store import InMemoryStore

from tests.fakes import DEST, WALLET_A, WALLET_B, FakeChain


class AppTestCase(unittest.TestCase):
    addresses = [WALLET_A, WALLET_B]
    poll_interval = 60.0

    def setUp(self):
        self.chain = FakeChain(confirmed=3, balances={WALLET_A: 10, WALLET_B: 1_000})
        self.sequencer = Sequencer(
            InMemoryStore(),
            self.chain,
            self.addresses,
            max_in_flight=2,
            poll_interval=self.poll_interval,
            min_balance=100,
        )
        self.client = TestClient(create_app(self.sequencer))
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)


class TestWalletRoutes(AppTestCase):
    def test_health(self):
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_send_and_inspect(self):
        r = self.client.post(f"/wallets/{WALLET_A}/send", json={"to": DEST, "value": "1000"})
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json(), {"nonce": 3, "status": "pending"})

        r = self.client.get(f"/wallets/{WALLET_A}/status")
        self.assertEqual(r.json(), {
            "pendingNonce": 4, "submittedNonce": 2, "confirmedNonce": 2, "queueDepth": 1, "inFlight": 0,
        })

        r = self.client.get(f"/wallets/{WALLET_A}/tx/3")
        body = r.json()
        self.assertEqual(
            set(body),
            {"nonce", "to", "value", "data", "gasLimit", "hash", "error", "createdAt", "status"},
        )
        self.assertEqual(body["to"], DEST)
        self.assertEqual(body["value"], "1000")
        self.assertEqual(body["status"], "pending")
        self.assertIsNone(body["hash"])

    def test_camel_case_fields(self):
        r = self.client.post(f"/wallets/{WALLET_A}/send", json={
            "to": DEST,
            "functionSignature": "function transfer(address to, uint256 amount)",
            "functionArgs": [DEST, "5"],
            "gasLimit": "60000",
        })
        self.assertEqual(r.status_code, 200, r.text)
        body = self.client.get(f"/wallets/{WALLET_A}/tx/3").json()
        self.assertTrue(body["data"].startswith("0xa9059cbb"))
        self.assertEqual(body["gasLimit"], "60000")

    def test_address_casing_is_ignored(self):
        self.client.post(f"/wallets/{WALLET_A.upper().replace('0X', '0x')}/send", json={"to": DEST})
        self.assertEqual(self.client.get(f"/wallets/{WALLET_A}/status").json()["pendingNonce"], 4)

    def test_validation_errors(self):
        for payload in ({}, {"to": "nowhere"}, {"to": DEST, "value": "-1"}, {"to": DEST, "data": "0xg0"}):
            with self.subTest(payload=payload):
                r = self.client.post(f"/wallets/{WALLET_A}/send", json=payload)
                self.assertEqual(r.status_code, 400)
                self.assertEqual(r.json()["type"], "ValidationError")
        self.assertEqual(self.chain.count_calls, 0)

    def test_not_found(self):
        r = self.client.get(f"/wallets/{WALLET_A}/status")
        self.assertEqual((r.status_code, r.json()["type"]), (404, "UninitializedWallet"))

        self.client.post(f"/wallets/{WALLET_A}/send", json={"to": DEST})
        r = self.client.get(f"/wallets/{WALLET_A}/tx/99")
        self.assertEqual((r.status_code, r.json()["type"]), (404, "NotFound"))

        r = self.client.post(f"/wallets/{DEST}/send", json={"to": WALLET_A})
        self.assertEqual(r.status_code, 404)
        r = self.client.get("/wallets/garbage/status")
        self.assertEqual(r.status_code, 404)

    def test_chain_unreachable_on_first_submit(self):
        self.chain.count_error = TransientChainError("connection refused")
        r = self.client.post(f"/wallets/{WALLET_A}/send", json={"to": DEST})
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json()["type"], "TransientChainError")


class TestPoolRoutes(AppTestCase):
    def test_addresses(self):
        self.assertEqual(self.client.get("/pool/addresses").json(), {"addresses": [WALLET_A, WALLET_B]})

    def test_refresh_and_disabled(self):
        self.assertEqual(self.client.get("/pool/disabled").json(), {"disabled": []})
        self.assertEqual(self.client.post("/pool/refresh").json(), {"disabled": [WALLET_A]})
        self.assertEqual(self.client.get("/pool/disabled").json(), {"disabled": [WALLET_A]})

        r = self.client.post("/send", json={"to": DEST})
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json(), {"address": WALLET_B, "nonce": 3, "status": "pending"})

    def test_all_disabled(self):
        self.chain.balances[WALLET_B] = 0
        self.client.post("/pool/refresh")
        r = self.client.post("/send", json={"to": DEST})
        self.assertEqual(r.status_code, 503)
        self.assertEqual(r.json()["type"], "NoWalletsAvailable")


class TestBackgroundProcessing(AppTestCase):
    poll_interval = 0.05

    def wait_for(self, predicate, timeout=3.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return
            time.sleep(0.02)
        self.fail("condition not reached")

    def test_queue_drains_on_wakeups(self):
        for _ in range(3):
            self.client.post(f"/wallets/{WALLET_B}/send", json={"to": DEST})

        # Window of 2 until the ledger confirms something
        self.wait_for(lambda: self.chain.sent_nonces() == [3, 4])
        time.sleep(0.15)
        self.assertEqual(self.chain.sent_nonces(), [3, 4])

        self.chain.confirmed[WALLET_B] = 5
        self.wait_for(lambda: self.chain.sent_nonces() == [3, 4, 5])

        self.chain.confirmed[WALLET_B] = 6
        self.wait_for(
            lambda: self.client.get(f"/wallets/{WALLET_B}/status").json()["queueDepth"] == 0
        )
        self.assertEqual(self.client.get(f"/wallets/{WALLET_B}/tx/5").json()["status"], "confirmed")
