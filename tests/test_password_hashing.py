"""Tests for bcrypt password hashing."""

from __future__ import annotations

import unittest

from accounts.errors import InvalidInput
from accounts.passwords import BCRYPT_ROUNDS, PasswordHasher, password_problem


class PasswordHashingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hasher = PasswordHasher(rounds=4)

    def test_hash_and_verify(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")
        self.assertNotEqual(hashed, "supersecurepassword")
        self.assertTrue(self.hasher.verify("supersecurepassword", hashed))
        self.assertFalse(self.hasher.verify("incorrect", hashed))

    def test_hashes_are_salted(self) -> None:
        first = self.hasher.hash("samepassword")
        second = self.hasher.hash("samepassword")
        self.assertNotEqual(first, second)
        self.assertTrue(self.hasher.verify("samepassword", first))
        self.assertTrue(self.hasher.verify("samepassword", second))

    def test_default_work_factor_is_twelve_rounds(self) -> None:
        self.assertEqual(BCRYPT_ROUNDS, 12)
        hashed = PasswordHasher().hash("anothersecurepassword")
        self.assertEqual(hashed.split("$")[2], "12")

    def test_hash_rejects_malformed_input(self) -> None:
        with self.assertRaises(InvalidInput):
            self.hasher.hash("")
        with self.assertRaises(InvalidInput):
            self.hasher.hash(None)  # type: ignore[arg-type]
        with self.assertRaises(InvalidInput):
            self.hasher.hash(12345678)  # type: ignore[arg-type]

    def test_verify_rejects_malformed_arguments(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")
        with self.assertRaises(InvalidInput):
            self.hasher.verify("", hashed)
        with self.assertRaises(InvalidInput):
            self.hasher.verify("supersecurepassword", "")
        with self.assertRaises(InvalidInput):
            self.hasher.verify("supersecurepassword", "not-a-bcrypt-hash")
        with self.assertRaises(InvalidInput):
            self.hasher.verify(None, hashed)  # type: ignore[arg-type]

    def test_passwords_bcrypt_cannot_digest_are_malformed(self) -> None:
        hashed = self.hasher.hash("supersecurepassword")
        for password in ("x" * 5000, "abcdefgh\x00"):
            with self.assertRaises(InvalidInput):
                self.hasher.hash(password)
            with self.assertRaises(InvalidInput):
                self.hasher.verify(password, hashed)
        self.assertIsNone(password_problem("x" * 4096))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
