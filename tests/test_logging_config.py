from antigravity_gateway.logging_config import redact_text


def test_bearer_tokens_are_redacted():
    assert "abc.def" not in redact_text("Authorization: Bearer abc.def")


def test_google_access_tokens_are_redacted():
    text = redact_text("refreshed ya29.a0AfH6SMBx-secret-value for account")
    assert "ya29" not in text
    assert "account" in text


def test_json_secrets_are_redacted():
    text = redact_text('{"refresh_token": "1//0gabc", "client_secret": "GOCSPX-xyz"}')
    assert "1//0gabc" not in text
    assert "GOCSPX-xyz" not in text
