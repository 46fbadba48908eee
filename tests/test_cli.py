"""
SecureVault CLI Test Suite
"""

import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from securevault import authorization_digest, format_digest
from securevault.cli import main


def run_cli(*argv):
    """Run the CLI; returns (exit_code, stdout)."""
    out = io.StringIO()
    with mock.patch("sys.argv", ["securevault", *argv]), redirect_stdout(out), \
            redirect_stderr(io.StringIO()):
        try:
            main()
            code = None
        except SystemExit as e:
            code = e.code
    return code, out.getvalue()


TUPLE = ["-V", "vault-001", "-r", "bob", "-a", "10", "-n", "1", "-N", "31337"]


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.key_path = os.path.join(self.tmp.name, "authority.json")

    def test_digest(self):
        code, out = run_cli("digest", *TUPLE)
        self.assertEqual(code, 0)
        expected = format_digest(authorization_digest("vault-001", "bob", 10, 1, 31337))
        self.assertEqual(out.strip(), expected)

    def test_keygen_sign_recover(self):
        code, out = run_cli("keygen", "-o", self.key_path, "-k", "kid:cli")
        self.assertEqual(code, 0)
        identity = out.strip()
        with open(self.key_path) as f:
            self.assertEqual(json.load(f)["identity"], identity)

        code, out = run_cli("sign", "-k", self.key_path, *TUPLE)
        self.assertEqual(code, 0)
        signed = json.loads(out)
        self.assertEqual(signed["signer"], identity)

        code, out = run_cli("recover", "-d", signed["digest"], "-s", signed["signature"])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), identity)

    def test_recover_bad_signature(self):
        digest = format_digest(authorization_digest("vault-001", "bob", 10, 1, 31337))
        code, _ = run_cli("recover", "-d", digest, "-s", "0x1234")
        self.assertEqual(code, 1)

    def test_demo(self):
        code, out = run_cli("demo")
        self.assertEqual(code, 0)
        self.assertIn("replay: ALREADY_CONSUMED", out)
        self.assertIn("foreign signer: INVALID_SIGNATURE", out)
        self.assertIn("overdraw: INSUFFICIENT_BALANCE", out)

    def test_no_command_prints_help(self):
        code, out = run_cli()
        self.assertIsNone(code)
        self.assertIn("usage", out.lower())


if __name__ == "__main__":
    unittest.main()
