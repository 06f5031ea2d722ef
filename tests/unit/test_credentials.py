"""
Unit Tests - Credential Obfuscation
===================================

Tests for modelkombat/core/credentials.py
"""

import base64
import unittest

from modelkombat.core.credentials import decode_credential, encode_credential


class TestCredentialEncoding(unittest.TestCase):

    def test_round_trip(self):
        for key in ["sk-or-v1-abc123", "x", "clé-ünïcode", "a" * 200]:
            self.assertEqual(decode_credential(encode_credential(key)), key)

    def test_encoded_is_reversed_base64(self):
        encoded = encode_credential("sk-or-v1-abc123")
        self.assertNotIn("sk-or", encoded)
        self.assertEqual(encoded[::-1], base64.b64encode(b"sk-or-v1-abc123").decode("ascii"))

    def test_empty_input_decodes_to_empty(self):
        self.assertEqual(decode_credential(""), "")
        self.assertEqual(decode_credential(None), "")

    def test_garbage_never_raises(self):
        for garbage in ["!!!not base64!!!", "abc", "é", "====", "=A"]:
            self.assertEqual(decode_credential(garbage), "", garbage)

    def test_invalid_utf8_payload(self):
        opaque = base64.b64encode(b"\xff\xfe\xfd").decode("ascii")[::-1]
        self.assertEqual(decode_credential(opaque), "")


if __name__ == '__main__':
    unittest.main()
