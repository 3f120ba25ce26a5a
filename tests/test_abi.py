import unittest

from eth_abi import decode

from sequencer.abi import canonical_signature, encode, parse_signature
from sequencer.errors import ValidationError

RECIPIENT = "0x" + "12" * 20


class TestParseSignature(unittest.TestCase):
    def test_canonical_form(self):
        self.assertEqual(parse_signature("transfer(address,uint256)"), ("transfer", ["address", "uint256"]))
        self.assertEqual(parse_signature("ping()"), ("ping", []))

    def test_human_readable_form(self):
        self.assertEqual(
            canonical_signature("function transfer(address to, uint amount) external"),
            "transfer(address,uint256)",
        )
        self.assertEqual(
            canonical_signature("function submit(bytes calldata data, int delta) public payable"),
            "submit(bytes,int256)",
        )

    def test_tuples_and_arrays(self):
        self.assertEqual(
            canonical_signature("function fill((address maker, uint256 amount)[] orders, uint8[2] flags)"),
            "fill((address,uint256)[],uint8[2])",
        )
        self.assertEqual(canonical_signature("f(tuple(uint a, bool b) t)"), "f((uint256,bool))")

    def test_nested_types_are_normalized(self):
        self.assertEqual(
            canonical_signature("function f(uint[] xs, (int a, (uint b, bytes c)[] d)[2] ys) external"),
            "f(uint256[],(int256,(uint256,bytes)[])[2])",
        )
        self.assertEqual(canonical_signature("g((uint a) [3] spaced)"), "g((uint256)[3])")

    def test_invalid_types(self):
        for signature in ("f(uint7)", "f(bytes33)", "f(address,)", "f(uint256[x])"):
            with self.subTest(signature=signature), self.assertRaises(ValidationError):
                parse_signature(signature)

    def test_malformed(self):
        for signature in ("transfer", "transfer(address", "transfer(address))", "1bad()", "f() returns"):
            with self.subTest(signature=signature), self.assertRaises(ValidationError):
                parse_signature(signature)


class TestEncode(unittest.TestCase):
    def test_erc20_transfer(self):
        data = encode("transfer(address,uint256)", [RECIPIENT, "1000"])
        self.assertEqual(data[:4].hex(), "a9059cbb")
        self.assertEqual(decode(["address", "uint256"], data[4:]), (RECIPIENT, 1000))

    def test_human_readable_matches_canonical(self):
        self.assertEqual(
            encode("function approve(address spender, uint256 value)", [RECIPIENT, 5]),
            encode("approve(address,uint256)", [RECIPIENT, "5"]),
        )

    def test_no_arguments(self):
        self.assertEqual(encode("totalSupply()").hex(), "18160ddd")

    def test_json_friendly_values(self):
        data = encode("f(uint256[],bytes32,bool)", [["1", "0x10"], "0x" + "ab" * 32, True])
        self.assertEqual(decode(["uint256[]", "bytes32", "bool"], data[4:]), ((1, 16), b"\xab" * 32, True))

    def test_bad_arguments(self):
        cases = [
            ("transfer(address,uint256)", [RECIPIENT]),
            ("transfer(address,uint256)", [RECIPIENT, "lots"]),
            ("transfer(address,uint256)", ["nope", 1]),
            ("transfer(address,uint8)", [RECIPIENT, 256]),
            ("f(uint256[])", ["1"]),
        ]
        for signature, args in cases:
            with self.subTest(signature=signature, args=args), self.assertRaises(ValidationError):
                encode(signature, args)
