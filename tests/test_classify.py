import asyncio
import unittest

import httpx

import sequencer.constants as C
from sequencer.classify import (
    as_chain_error,
    classify,
    classify_engine_result,
    classify_message,
    is_engine_accepted,
)
from sequencer.errors import ChainError, NonRetriableChainError, SkipFailure, TransientChainError

RETRIABLE = C.ErrorKind.RETRIABLE
NON_RETRIABLE = C.ErrorKind.NON_RETRIABLE


class TestClassifyMessage(unittest.TestCase):
    def test_retriable_messages(self):
        for message in (
            "Request timed out",
            "Connection refused",
            "429 Too Many Requests",
            "daily request limit reached",
            "header not found",
            "node is syncing",
            "replacement transaction underpriced",
            "max fee per gas less than block base fee: maxFeePerGas: 1, baseFee: 7",
            "txpool is full",
            "503 Service Unavailable",
        ):
            with self.subTest(message=message):
                self.assertEqual(classify_message(message), RETRIABLE)

    def test_non_retriable_messages(self):
        for message in (
            "execution reverted: ERC20: transfer amount exceeds balance",
            "insufficient funds for gas * price + value",
            "nonce too low",
            "intrinsic gas too low",
            "invalid sender",
            "",
        ):
            with self.subTest(message=message):
                self.assertEqual(classify_message(message), NON_RETRIABLE)


class TestClassify(unittest.TestCase):
    def test_structured_kind_wins(self):
        self.assertEqual(classify(TransientChainError("execution reverted")), RETRIABLE)
        self.assertEqual(classify(NonRetriableChainError("timeout")), NON_RETRIABLE)
        self.assertEqual(classify(ChainError("x", kind=RETRIABLE)), RETRIABLE)
        self.assertEqual(classify(SkipFailure("x")), RETRIABLE)

    def test_transport_exceptions(self):
        self.assertEqual(classify(asyncio.TimeoutError()), RETRIABLE)
        self.assertEqual(classify(ConnectionResetError()), RETRIABLE)
        self.assertEqual(classify(httpx.ConnectError("refused")), RETRIABLE)

    def test_opaque_exceptions_use_message(self):
        self.assertEqual(classify(ValueError({"code": -32000, "message": "header not found"})), RETRIABLE)
        self.assertEqual(classify(ValueError("execution reverted")), NON_RETRIABLE)

    def test_as_chain_error(self):
        err = as_chain_error(RuntimeError("rate limit exceeded"))
        self.assertIsInstance(err, TransientChainError)
        self.assertTrue(err.retriable)
        self.assertEqual(str(err), "rate limit exceeded")

        err = as_chain_error(ValueError("invalid opcode"))
        self.assertIsInstance(err, NonRetriableChainError)
        self.assertFalse(err.retriable)

        original = NonRetriableChainError("kept")
        self.assertIs(as_chain_error(original), original)

        # Empty messages fall back to the class name
        self.assertEqual(str(as_chain_error(asyncio.TimeoutError())), "TimeoutError")


class TestEngineResults(unittest.TestCase):
    def test_accepted(self):
        for er in ("tesSUCCESS", "tecUNFUNDED_PAYMENT", "tecPATH_DRY", "terQUEUED"):
            with self.subTest(er=er):
                self.assertTrue(is_engine_accepted(er))

    def test_not_accepted(self):
        for er in ("telINSUF_FEE_P", "terPRE_SEQ", "temBAD_AMOUNT", "tefPAST_SEQ", ""):
            with self.subTest(er=er):
                self.assertFalse(is_engine_accepted(er))

    def test_classification(self):
        self.assertEqual(classify_engine_result("telINSUF_FEE_P"), RETRIABLE)
        self.assertEqual(classify_engine_result("terPRE_SEQ"), RETRIABLE)
        self.assertEqual(classify_engine_result("temMALFORMED"), NON_RETRIABLE)
        self.assertEqual(classify_engine_result("tefPAST_SEQ"), NON_RETRIABLE)
        self.assertEqual(classify_engine_result("unknown"), NON_RETRIABLE)
