import re

import pytest

from security.tokens import (
    constant_time_equals,
    generate_csrf_token,
    generate_numeric_code,
    generate_opaque_id,
    generate_otp,
    generate_salt,
    generate_secret_token,
    hash_code,
    hash_ip,
    hash_token,
    hash_user_agent,
    verify_code,
)


class TestSecretTokens:
    def test_secret_is_url_safe_and_hash_matches(self):
        secret, secret_hash = generate_secret_token()

        assert re.fullmatch(r"[A-Za-z0-9_-]{43}", secret)  # 32 bytes, base64url, unpadded
        assert secret_hash == hash_token(secret)
        assert re.fullmatch(r"[0-9a-f]{64}", secret_hash)

    def test_secrets_are_unique(self):
        secrets_seen = {generate_secret_token()[0] for _ in range(50)}
        assert len(secrets_seen) == 50

    def test_hash_is_deterministic(self):
        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert hash_token("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_csrf_token_length(self):
        assert re.fullmatch(r"[0-9a-f]{64}", generate_csrf_token())
        assert len(generate_csrf_token(12)) == 24


class TestConstantTimeEquals:
    @pytest.mark.parametrize("a,b", [
        ("", ""),
        ("a", "a"),
        ("same-value", "same-value"),
        ("ünïcödé", "ünïcödé"),
    ])
    def test_equal(self, a, b):
        assert constant_time_equals(a, b) is True

    @pytest.mark.parametrize("a,b", [
        ("a", ""),
        ("", "a"),
        ("abc", "abcd"),
        ("abcd", "abc"),
        ("abc", "abd"),
        ("xbc", "abc"),
        ("ü", "u"),
    ])
    def test_not_equal(self, a, b):
        assert constant_time_equals(a, b) is False

    def test_mismatch_position_does_not_change_result(self):
        base = "0" * 32
        for i in range(32):
            other = base[:i] + "1" + base[i + 1:]
            assert constant_time_equals(base, other) is False
        assert constant_time_equals(base, base) is True


class TestOtpPrimitives:
    def test_numeric_code_range(self):
        for _ in range(500):
            code = generate_numeric_code()
            assert re.fullmatch(r"\d{6}", code)
            assert 100000 <= int(code) <= 999999

    def test_salt_is_random_hex(self):
        salt = generate_salt()
        assert re.fullmatch(r"[0-9a-f]{32}", salt)
        assert salt != generate_salt()

    def test_generate_otp_hashes_salt_plus_code(self):
        code, salt, code_hash = generate_otp()
        assert code_hash == hash_token(salt + code)
        assert code_hash == hash_code(salt, code)
        assert code not in code_hash

    def test_verify_code(self):
        code, salt, code_hash = generate_otp()
        assert verify_code(code, salt, code_hash) is True
        assert verify_code("000000", salt, code_hash) is False
        assert verify_code(code, generate_salt(), code_hash) is False


class TestOpaqueIds:
    def test_format(self):
        handle = generate_opaque_id("example.com")
        assert re.fullmatch(r"[0-9a-z]{6}\.example\.com", handle)

    def test_metadata_hashes(self):
        assert hash_user_agent(None) is None
        assert hash_user_agent("") is None
        assert hash_user_agent("Mozilla/5.0") == hash_token("Mozilla/5.0")
        assert hash_ip(None) is None
        assert hash_ip("203.0.113.7") == hash_token("203.0.113.7")
