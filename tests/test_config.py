"""Tests for settings loading and validation."""

import pytest

from config import load_settings_conf, default_settings, SettingsError

SELLER = "CF6ga312fCGHNoPYp7PdNV8DHjH4giJvFSXQyQTzYJta"

def write_settings(tmp_path, body: str):
    (tmp_path / "settings.conf").write_text("[DEFAULT]\n" + body)

def test_load_with_defaults(tmp_path):
    write_settings(tmp_path, f"db_url = postgresql://localhost/test\nseller_wallet = {SELLER}\n")
    settings = load_settings_conf(str(tmp_path))

    assert settings['db_url'] == "postgresql://localhost/test"
    assert settings['seller_wallet'] == SELLER
    assert settings['session_expiry_hours'] == 24
    assert settings['confirmation_timeout'] == 120
    assert settings['challenge_max_age_seconds'] == 120
    assert settings['commitment'] == 'confirmed'
    assert settings['jwt_secret'] == ''

def test_overrides_converted(tmp_path):
    write_settings(tmp_path, "confirmation_poll_interval = 2\ncommitment = Finalized\napi_port = 9000\n")
    settings = load_settings_conf(str(tmp_path))
    assert settings['confirmation_poll_interval'] == 2
    assert settings['commitment'] == 'finalized'
    assert settings['api_port'] == 9000

def test_missing_file(tmp_path):
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    assert "Settings file not found" in str(exc.value)

def test_blank_required_setting(tmp_path):
    write_settings(tmp_path, "db_url =\nsolana_rpc_url =\n")
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    message = str(exc.value)
    assert "Missing required settings:" in message
    assert "  - db_url" in message
    assert "  - solana_rpc_url" in message

def test_invalid_values_reported_together(tmp_path):
    write_settings(tmp_path, "rpc_timeout = soon\nconfirmation_timeout = 0\ncommitment = processed\nseller_wallet = nope\n")
    with pytest.raises(SettingsError) as exc:
        load_settings_conf(str(tmp_path))
    message = str(exc.value)
    assert "rpc_timeout: expected an integer" in message
    assert "confirmation_timeout: must be at least 1" in message
    assert "commitment: must be one of confirmed, finalized" in message
    assert "seller_wallet: not a valid Solana address" in message

def test_default_settings():
    settings = default_settings({'confirmation_timeout': 5})
    assert settings['confirmation_timeout'] == 5
    assert settings['seller_wallet'] == SELLER
