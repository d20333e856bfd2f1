from src.core.logger import sanitize_dict


def test_sanitize_dict_redacts_sensitive_keys():
    data = {
        "username": "test",
        "email": "test@test.com",
        "password_hash": "not_a_hash",
        "Reset_Token": "abc",
    }

    assert sanitize_dict(data) == {
        "username": "test",
        "email": "test@test.com",
        "password_hash": "***REDACTED***",
        "Reset_Token": "***REDACTED***",
    }


def test_sanitize_dict_leaves_input_untouched():
    data = {"password_hash": "not_a_hash"}

    sanitize_dict(data)

    assert data == {"password_hash": "not_a_hash"}
